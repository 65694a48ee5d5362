import asyncio
import threading

from shopmate.routers.scrape import scrape_runner
from shopmate.scraper import scrape_store
from shopmate.session_cache import TTLCache
from shopmate.streaming import JobRegistry, encode_event, is_terminal

from conftest import ORIGIN, FakeStorefront, make_products, read_events


def terminal_events(events):
    return [e for e in events if is_terminal(e)]


def test_anonymous_stream_is_capped_and_not_persisted(api, storage, storefront):
    r = api.post("/api/scrape-stream", json={"shopUrl": "shop.example/"})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")
    events = read_events(r.text)
    assert len(terminal_events(events)) == 1
    assert events[-1]["finished"] is True
    assert all("message" in e for e in events[:-1])
    assert events[0] == {"message": "Starting scrape..."}
    data = events[-1]["data"]
    assert len(data["products"]) == 250
    assert data["vendors"] == [{"name": "Acme", "count": 250}]
    assert data["productTypes"] == ["Shirts"]
    assert storefront.count("/products.json") == 1
    assert storage.saved == []


def test_authenticated_stream_persists_before_finishing(api, storage, storefront, login):
    email = login()
    events = read_events(api.post("/api/scrape-stream", json={"shopUrl": ORIGIN}).text)
    assert events[-1]["finished"] is True
    assert len(events[-1]["data"]["products"]) == 500
    assert storage.saved == [(email, ORIGIN)]
    cached = storage.load_cached_scrape(email, ORIGIN)
    assert set(cached) == {"products", "collections"}
    assert len(cached["products"]) == 500
    history = storage.get_history(email)
    assert [(h.shop_url, h.product_count, h.collection_count) for h in history] == [(ORIGIN, 500, 1)]
    store = storage.get_stores(email)[0]
    assert store.product_count == 500 and store.last_updated


def test_cached_catalog_short_circuits(api, storage, storefront, login):
    email = login()
    storage.save_cached_scrape(email, ORIGIN, {
        "products": make_products(2) + make_products(1, start=3, vendor=""),
        "collections": [{"id": 1, "handle": "shirts"}],
    })
    storage.saved.clear()

    events = read_events(api.post("/api/scrape-stream", json={"shopUrl": ORIGIN, "force": False}).text)
    assert len(events) == 2
    assert "message" in events[0]
    assert events[1]["finished"] is True
    assert [p["id"] for p in events[1]["data"]["products"]] == [1, 2, 3]
    assert events[1]["data"]["vendors"] == [{"name": "", "count": 1}, {"name": "Acme", "count": 2}]
    assert storefront.requests == []
    assert storage.saved == []


def test_force_refresh_ignores_cache(api, storage, storefront, login):
    email = login()
    storage.save_cached_scrape(email, ORIGIN, {"products": [], "collections": []})
    events = read_events(api.post("/api/scrape-stream", json={"shopUrl": ORIGIN, "force": True}).text)
    assert len(events[-1]["data"]["products"]) == 500
    assert storefront.count("/products.json") == 3


def test_upstream_failure_ends_with_error_and_no_persistence(api, storage, storefront, login):
    login()
    storefront.fail_product_page = 2
    events = read_events(api.post("/api/scrape-stream", json={"shopUrl": ORIGIN}).text)
    terminal = terminal_events(events)
    assert len(terminal) == 1
    assert terminal[0] is events[-1]
    assert "page 2" in events[-1]["error"]
    assert "finished" not in events[-1]
    assert storage.saved == []
    assert storage.get_history("ada@example.com") == []


def test_missing_shop_url_is_rejected(api, storefront):
    assert api.post("/api/scrape-stream", json={}).status_code == 400
    assert api.post("/api/scrape-stream", json={"shopUrl": "   "}).status_code == 400
    assert storefront.requests == []


def test_session_scrape_streams_by_id(api, storefront):
    r = api.post("/api/scrape", json={"shopUrl": ORIGIN})
    session_id = r.json()["sessionId"]
    events = read_events(api.get("/api/stream", params={"sessionId": session_id}).text)
    assert events[-1]["finished"] is True
    assert len(events[-1]["data"]["products"]) == 250

    # replayed for a second reader while the session lives
    again = read_events(api.get("/api/stream", params={"sessionId": session_id}).text)
    assert again == events

    assert api.get("/api/stream", params={"sessionId": "nope"}).status_code == 404
    assert api.get("/api/stream").status_code == 400


def test_cache_stats_and_clear(api):
    session_id = api.post("/api/scrape", json={"shopUrl": ORIGIN}).json()["sessionId"]
    read_events(api.get("/api/stream", params={"sessionId": session_id}).text)
    stats = api.get("/api/cache/stats").json()
    assert stats["dataCache"]["size"] == 1
    assert api.post("/api/cache/clear", json={"type": "images"}).status_code == 400
    assert api.post("/api/cache/clear", json={"type": "all"}).json()["success"] is True
    assert api.get("/api/stream", params={"sessionId": session_id}).status_code == 404


def test_concurrent_requests_join_one_job():
    shop = FakeStorefront(product_pages=[make_products(3)])
    runs = []

    async def scenario():
        registry = JobRegistry()

        async def runner(job):
            runs.append(job.id)
            return await scrape_store(shop.client, ORIGIN, job.publish_message, cancel_event=job.cancel_event)

        first = registry.start(("ada", ORIGIN), runner)
        second = registry.start(("ada", ORIGIN), runner)
        other = registry.start(("bob", ORIGIN), runner)
        assert first is second and first is not other
        chunks = [chunk async for chunk in second.stream()]
        await asyncio.gather(first.task, other.task)
        return first, chunks

    job, chunks = asyncio.run(scenario())
    assert len(runs) == 2
    assert chunks == [encode_event(e) for e in job.events]
    assert job.events[-1]["finished"] is True


def test_last_listener_leaving_cancels_the_scrape():
    shop = FakeStorefront(product_pages=[make_products(3)])

    async def scenario():
        registry = JobRegistry()

        async def runner(job):
            return await scrape_store(shop.client, ORIGIN, job.publish_message, cancel_event=job.cancel_event)

        job = registry.start(("ada", ORIGIN), runner)
        queue = job.subscribe()
        job.unsubscribe(queue)
        await job.task
        return job, registry

    job, registry = asyncio.run(scenario())
    assert job.cancelled
    assert job.events[-1] == {"error": "Scrape cancelled"}
    assert shop.requests == []
    assert registry.in_flight() == []


def test_session_cache_expires_entries():
    now = [0.0]
    cache = TTLCache(ttl=10, clock=lambda: now[0])
    cache.set("a", 1)
    cache.set("b", 2, ttl=30)
    assert cache.get("a") == 1
    now[0] = 11
    assert cache.get("a") is None
    assert cache.stats() == {"size": 1, "keys": ["b"]}
    now[0] = 31
    assert len(cache) == 0


def test_session_cache_drops_expired_entries_on_write():
    now = [0.0]
    cache = TTLCache(ttl=10, clock=lambda: now[0])
    for i in range(100):
        cache.set(i, object())
        now[0] += 60
    assert len(cache._entries) == 1


def test_failed_bookkeeping_leaves_no_cached_scrape(api, storage, storefront, login, monkeypatch):
    email = login()

    def broken_history(item):
        raise OSError("disk full")

    monkeypatch.setattr(storage, "add_history", broken_history)
    events = read_events(api.post("/api/scrape-stream", json={"shopUrl": ORIGIN}).text)
    assert len(terminal_events(events)) == 1
    assert "disk full" in events[-1]["error"]
    assert storage.saved == []
    assert storage.load_cached_scrape(email, ORIGIN) is None


def test_invalid_cached_scrape_falls_back_to_live_scrape(api, storage, storefront, login):
    email = login()
    storage.save_cached_scrape(email, ORIGIN, {"products": [{"id": "abc"}], "collections": []})
    r = api.post("/api/scrape-stream", json={"shopUrl": ORIGIN})
    assert r.status_code == 200
    events = read_events(r.text)
    assert events[-1]["finished"] is True
    assert len(events[-1]["data"]["products"]) == 500
    assert storefront.count("/products.json") == 3


def test_persistence_runs_off_the_event_loop_thread(storage):
    shop = FakeStorefront(product_pages=[make_products(2)])
    writer_threads = []
    save = storage.save_cached_scrape

    def recording_save(email, shop_url, data):
        writer_threads.append(threading.get_ident())
        save(email, shop_url, data)

    storage.save_cached_scrape = recording_save

    async def scenario():
        job = JobRegistry().start(("ada", ORIGIN), scrape_runner(shop.client, storage, ORIGIN, "ada@example.com"))
        await job.task
        return threading.get_ident(), job

    loop_thread, job = asyncio.run(scenario())
    assert job.events[-1]["finished"] is True
    assert len(writer_threads) == 1 and writer_threads[0] != loop_thread
    assert storage.load_cached_scrape("ada@example.com", ORIGIN)["products"][0]["id"] == 1
