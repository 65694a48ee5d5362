# shopmate/client.py
"""Consume the scrape stream from a ShopMate server and fold the result into
the local snapshot cache.

    shopmate-import https://some-store.example --server http://localhost:8000
"""
import argparse
import asyncio
import json
import logging
from typing import Any, AsyncIterator, Callable, Dict, Optional

import httpx

from shopmate.config import CLIENT_CACHE_PATH, COOKIE_NAME, LOG_LEVEL, TIMEOUT
from shopmate.models import CatalogSnapshot, Collection, Product
from shopmate.reconciler import CatalogCache, SnapshotStore
from shopmate.scraper import ScrapeError

logger = logging.getLogger(__name__)

DELIMITER = "\n\n"


async def iter_events(chunks: AsyncIterator[str]) -> AsyncIterator[Dict[str, Any]]:
    """Yield decoded ``data:`` events from a chunked text stream.

    Chunks may split an event anywhere; text is buffered until a blank line
    closes the event. Malformed events are skipped.
    """
    buffer = ""
    async for chunk in chunks:
        buffer += chunk
        *parts, buffer = buffer.split(DELIMITER)
        for part in parts:
            event = _decode(part)
            if event is not None:
                yield event
    if buffer.strip():
        event = _decode(buffer)
        if event is not None:
            yield event


def _decode(part: str) -> Optional[Dict[str, Any]]:
    part = part.strip()
    if not part.startswith("data:"):
        return None
    try:
        event = json.loads(part[len("data:"):].strip())
    except ValueError:
        logger.debug("Skipping malformed event %r", part[:80])
        return None
    return event if isinstance(event, dict) else None


class CatalogClient:
    def __init__(
        self,
        base_url: str,
        cache: Optional[CatalogCache] = None,
        user: Optional[str] = None,
        session_token: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.cache = cache or CatalogCache()
        self.user = user
        self.session_token = session_token
        self._client = http_client

    def _new_client(self) -> httpx.AsyncClient:
        cookies = {COOKIE_NAME: self.session_token} if self.session_token else None
        # the stream stays open for as long as the scrape runs
        return httpx.AsyncClient(cookies=cookies, timeout=httpx.Timeout(TIMEOUT, read=None))

    async def stream_scrape(
        self,
        shop_url: str,
        force: bool = False,
        on_message: Optional[Callable[[str], None]] = None,
    ) -> Dict[str, Any]:
        """Run a scrape on the server and return the final catalog payload."""
        client = self._client or self._new_client()
        try:
            async with client.stream(
                "POST", f"{self.base_url}/api/scrape-stream", json={"shopUrl": shop_url, "force": force}
            ) as r:
                if r.status_code >= 400:
                    await r.aread()
                    raise ScrapeError(f"Scrape request rejected: {r.status_code} {r.text}")
                async for event in iter_events(r.aiter_text()):
                    if "error" in event:
                        raise ScrapeError(event["error"])
                    if event.get("finished"):
                        return event.get("data") or {}
                    if event.get("message") and on_message:
                        on_message(event["message"])
        finally:
            if self._client is None:
                await client.aclose()
        raise ScrapeError("Stream ended without a result")

    async def import_store(
        self,
        shop_url: str,
        force: bool = False,
        on_message: Optional[Callable[[str], None]] = None,
    ) -> CatalogSnapshot:
        data = await self.stream_scrape(shop_url, force=force, on_message=on_message)
        products = [Product.model_validate(p) for p in data.get("products") or []]
        collections = [Collection.model_validate(c) for c in data.get("collections") or []]
        return self.cache.apply(self.user, products, collections=collections)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Import a Shopify storefront through a ShopMate server.")
    parser.add_argument("shop_url")
    parser.add_argument("--server", default="http://localhost:8000")
    parser.add_argument("--force", action="store_true", help="ignore the server-side cached scrape")
    parser.add_argument("--user", default=None, help="local cache owner (defaults to anon)")
    parser.add_argument("--token", default=None, help="session cookie value for an authenticated import")
    parser.add_argument("--cache", default=CLIENT_CACHE_PATH, help="sqlite file for the local snapshot")
    args = parser.parse_args(argv)

    logging.basicConfig(level=LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")
    cache = CatalogCache(SnapshotStore(args.cache))
    client = CatalogClient(args.server, cache=cache, user=args.user, session_token=args.token)
    try:
        snapshot = asyncio.run(client.import_store(args.shop_url, force=args.force, on_message=lambda m: print(f"> {m}")))
    except (ScrapeError, httpx.HTTPError) as e:
        print(f"ERROR: {e}")
        return 1
    print(f"Cached {len(snapshot.products)} products and {len(snapshot.collections)} collections for {snapshot.user}.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
