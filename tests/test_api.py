import csv
import io

from shopmate.auth import sign_token, verify_token

from conftest import ORIGIN, make_products


def test_health(api):
    assert api.get("/").json()["ok"] is True


def test_register_login_logout(api):
    assert api.get("/api/auth/me").json() == {"user": None}
    assert api.post("/api/auth/register", json={"email": "not-an-email"}).status_code == 400
    assert api.post("/api/auth/login", json={"email": "ada@example.com"}).status_code == 404

    assert api.post("/api/auth/register", json={"email": "ada@example.com"}).status_code == 200
    assert api.get("/api/auth/me").json() == {"user": {"email": "ada@example.com"}}

    api.post("/api/auth/logout")
    api.cookies.clear()
    assert api.get("/api/auth/me").json() == {"user": None}
    assert api.post("/api/auth/login", json={"email": "ada@example.com"}).status_code == 200
    assert api.get("/api/auth/me").json()["user"]["email"] == "ada@example.com"


def test_tokens_reject_tampering_and_expiry():
    token = sign_token("ada@example.com", secret="s3cret")
    assert verify_token(token, secret="s3cret") == "ada@example.com"
    assert verify_token(token, secret="other") is None
    assert verify_token(token + "x", secret="s3cret") is None
    assert verify_token(sign_token("ada@example.com", ttl_seconds=-10, secret="s3cret"), secret="s3cret") is None
    assert verify_token("garbage", secret="s3cret") is None


def test_mutations_require_login(api):
    assert api.post("/api/stores", json={"shopUrl": ORIGIN}).status_code == 401
    assert api.post("/api/lists", json={"name": "x"}).status_code == 401
    assert api.get("/api/user/prefs").status_code == 401
    assert api.get("/api/stores").json() == {"stores": []}
    assert api.get("/api/history").json() == {"history": []}


def test_store_registry(api, storage, login):
    email = login()
    r = api.post("/api/stores", json={"shopUrl": "https://Shop.example/collections/all"})
    assert r.json()["stores"] == [{"email": email, "shopUrl": ORIGIN}]
    api.post("/api/stores", json={"shopUrl": ORIGIN})
    assert len(api.get("/api/stores").json()["stores"]) == 1

    storage.save_cached_scrape(email, ORIGIN, {"products": make_products(2), "collections": []})
    exists = api.get("/api/store-cache/exists", params={"shopUrl": ORIGIN}).json()
    assert exists["exists"] is True and exists["productCount"] == 2

    r = api.request("DELETE", "/api/stores", json={"shopUrl": ORIGIN})
    assert r.json()["stores"] == []
    assert storage.load_cached_scrape(email, ORIGIN) is None
    assert api.get("/api/store-cache/exists", params={"shopUrl": ORIGIN}).json() == {"exists": False}


def test_refresh_store(api, storage, storefront, login):
    email = login()
    r = api.post("/api/stores/refresh", json={"shopUrl": ORIGIN})
    body = r.json()
    assert body["ok"] is True
    assert body["productCount"] == 500
    assert body["collectionCount"] == 1
    assert len(storage.load_cached_scrape(email, ORIGIN)["products"]) == 500

    storefront.fail_product_page = 1
    assert api.post("/api/stores/refresh", json={"shopUrl": ORIGIN}).status_code == 500


def test_console_data_merges_stores_and_searches(api, storage, login):
    email = login()
    other = "https://other.example"
    for url in (ORIGIN, other):
        storage.add_store(email, url)
    storage.save_cached_scrape(email, ORIGIN, {
        "products": make_products(3, body_html="<p>Soft <b>linen</b> weave</p>"),
        "collections": [{"id": 1, "handle": "a"}],
    })
    storage.save_cached_scrape(email, other, {"products": make_products(2, start=10), "collections": []})

    data = api.get("/api/console-data", params={"limit": 2}).json()
    assert data["totalProducts"] == 5
    assert data["loadedProducts"] == 2
    assert data["hasMore"] is True
    assert data["products"][0]["__storeHost"] == "shop.example"

    page3 = api.get("/api/console-data", params={"limit": 2, "page": 3}).json()
    assert page3["hasMore"] is False and page3["products"][0]["__storeUrl"] == other

    found = api.get("/api/console-data", params={"q": "LINEN weave"}).json()
    assert found["totalProducts"] == 3

    only_other = api.get("/api/console-data", params={"store": "other"}).json()
    assert only_other["totalProducts"] == 2 and only_other["totalCollections"] == 0


def test_lists_lifecycle(api, login):
    login()
    assert api.post("/api/lists", json={"name": "  "}).status_code == 400
    lst = api.post("/api/lists", json={"name": "Summer"}).json()["list"]
    list_id = lst["id"]
    assert lst["items"] == [] and lst["createdAt"]

    items = [
        {"handle": "tee", "__storeHost": "a.example", "variants": [{"id": 1, "price": "10.00"}]},
        {"handle": "tee", "__storeHost": "b.example"},
        {"handle": "tee", "__storeHost": "a.example"},
    ]
    r = api.post(f"/api/lists/{list_id}/items", json={"products": items})
    assert len(r.json()["list"]["items"]) == 2

    r = api.patch(f"/api/lists/{list_id}/items", json={"updates": [{"handle": "tee", "data": {"price": "12.00"}}]})
    first = r.json()["list"]["items"][0]
    assert first["price"] == "12.00"
    assert first["variants"][0]["price"] == "12.00"

    r = api.request("DELETE", f"/api/lists/{list_id}/items", json={"keys": ["tee"]})
    assert r.json()["list"]["items"] == []

    assert api.put(f"/api/lists/{list_id}", json={"name": "Winter"}).json()["list"]["name"] == "Winter"
    assert [x["name"] for x in api.get("/api/lists").json()["lists"]] == ["Winter"]
    assert api.post("/api/lists/missing/items", json={"products": []}).status_code == 404
    assert api.delete(f"/api/lists/{list_id}").json() == {"ok": True}
    assert api.get(f"/api/lists/{list_id}").json() == {"list": None}


def test_presets_and_prefs(api, login):
    login()
    r = api.post("/api/presets", json={"vendors": ["Zed", "Acme"], "tags": "red, blue"})
    assert r.json()["presets"] == {"vendors": ["Acme", "Zed"], "productTypes": [], "tags": ["blue", "red"]}
    r = api.put("/api/presets", json={"kind": "vendors", "from": "Zed", "to": "Zeta"})
    assert r.json()["presets"]["vendors"] == ["Acme", "Zeta"]
    assert api.request("DELETE", "/api/presets", json={"kind": "tags", "value": "red"}).json()["presets"]["tags"] == ["blue"]
    assert api.request("DELETE", "/api/presets", json={"kind": "tags", "value": "red"}).status_code == 404
    assert api.request("DELETE", "/api/presets", json={"kind": "colors", "value": "red"}).status_code == 400

    assert api.post("/api/user/prefs", json={"theme": "dark"}).json()["prefs"] == {"theme": "dark"}
    api.post("/api/user/prefs", json={"pageSize": 50})
    assert api.get("/api/user/prefs").json()["prefs"] == {"theme": "dark", "pageSize": 50}


def test_export_csv(api):
    products = make_products(1, status="draft", images=[{"src": "https://cdn.example/a.jpg", "alt": "A"}])
    products[0]["variants"].append({"id": 99, "title": "Large", "price": 12.5, "sku": "TEE-L"})
    r = api.post("/api/export", json={"products": products})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert "shopify_import.csv" in r.headers["content-disposition"]
    rows = list(csv.DictReader(io.StringIO(r.text)))
    assert len(rows) == 2
    assert rows[0]["Title"] == "Product 1" and rows[1]["Title"] == ""
    assert rows[0]["Tags"] == "cotton, summer"
    assert rows[0]["Image Src"] == "https://cdn.example/a.jpg"
    assert rows[1]["Variant Price"] == "12.5" and rows[1]["Variant SKU"] == "TEE-L"
    assert rows[0]["Published"] == "FALSE" and rows[0]["Status"] == "draft"
    assert api.post("/api/export", json={}).status_code == 400


def test_collection_products(api, storefront):
    storefront.collection_products = {"shirts": [make_products(2), make_products(2, start=3)]}
    r = api.post("/api/collection-products", json={"shopUrl": ORIGIN, "collectionHandle": "shirts"})
    assert [p["id"] for p in r.json()["products"]] == [1, 2]  # anonymous: first page only
    assert api.post("/api/collection-products", json={"shopUrl": ORIGIN}).status_code == 400
