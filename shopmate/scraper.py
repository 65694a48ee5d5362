# shopmate/scraper.py
import asyncio
import logging
from collections import Counter
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx

from shopmate.config import (
    COLLECTION_PRODUCTS_PATH,
    COLLECTIONS_PATH,
    PAGE_SIZE,
    PRODUCTS_PATH,
    TIMEOUT,
    USER_AGENT,
)
from shopmate.models import Catalog, Collection, Product, VendorFacet

logger = logging.getLogger(__name__)

HEADERS = {"User-Agent": USER_AGENT, "Accept": "application/json"}

ProgressCallback = Callable[[str], None]


class ScrapeError(Exception):
    """Base class for failures that end a scrape."""


class UpstreamFetchError(ScrapeError):
    def __init__(self, message: str, url: Optional[str] = None, page: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.page = page


class ScrapeCancelled(ScrapeError):
    pass


def make_client(**kwargs) -> httpx.AsyncClient:
    kwargs.setdefault("headers", HEADERS)
    kwargs.setdefault("timeout", TIMEOUT)
    kwargs.setdefault("follow_redirects", True)
    return httpx.AsyncClient(**kwargs)


def _noop(_: str) -> None:
    pass


async def fetch_json(client: httpx.AsyncClient, url: str) -> Any:
    try:
        r = await client.get(url)
    except httpx.HTTPError as e:
        raise UpstreamFetchError(f"Failed to fetch {url}: {e}", url=url) from e
    if not r.is_success:
        raise UpstreamFetchError(f"Failed to fetch {url}: {r.status_code} {r.reason_phrase}", url=url)
    try:
        return r.json()
    except ValueError as e:
        raise UpstreamFetchError(f"Failed to fetch {url}: response is not JSON", url=url) from e


def _resource_key(resource_path: str) -> str:
    # "/collections/x/products.json" -> "products"
    return resource_path.rstrip("/").rsplit("/", 1)[-1].split(".", 1)[0]


async def fetch_paged(
    client: httpx.AsyncClient,
    origin: str,
    resource_path: str,
    on_progress: Optional[ProgressCallback] = None,
    page_size: int = PAGE_SIZE,
    max_pages: Optional[int] = None,
    key: Optional[str] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> List[Dict[str, Any]]:
    """Fetch every page of a storefront resource, one page at a time.

    Stops at the first empty page or once ``max_pages`` pages were read. Any
    failing page aborts the whole fetch with ``UpstreamFetchError``; callers
    never see a partial list.
    """
    on_progress = on_progress or _noop
    key = key or _resource_key(resource_path)
    items: List[Dict[str, Any]] = []
    page = 1
    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise ScrapeCancelled(f"Fetch of {key} cancelled before page {page}")
        url = f"{origin}{resource_path}?limit={page_size}&page={page}"
        on_progress(f"Fetching {key} page {page}...")
        try:
            data = await fetch_json(client, url)
        except UpstreamFetchError as e:
            raise UpstreamFetchError(f"{key} page {page}: {e}", url=url, page=page) from e
        batch = data.get(key) if isinstance(data, dict) else None
        if not isinstance(batch, list):
            raise UpstreamFetchError(f"{key} page {page}: unexpected response from {url}", url=url, page=page)
        if not batch:
            on_progress(f"All {key} pages fetched.")
            break
        items.extend(batch)
        on_progress(f"Fetched {len(batch)} {key}. Total: {len(items)}.")
        if max_pages is not None and page >= max_pages:
            on_progress(f"Stopped after {page} page(s) of {key}.")
            break
        page += 1
    return items


async def fetch_all_products(
    client: httpx.AsyncClient,
    origin: str,
    on_progress: Optional[ProgressCallback] = None,
    max_pages: Optional[int] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> List[Product]:
    on_progress = on_progress or _noop
    on_progress("Starting product fetch...")
    raw = await fetch_paged(client, origin, PRODUCTS_PATH, on_progress, max_pages=max_pages, cancel_event=cancel_event)
    return [Product.model_validate(p) for p in raw]


async def fetch_all_collections(
    client: httpx.AsyncClient,
    origin: str,
    on_progress: Optional[ProgressCallback] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> List[Collection]:
    # collections.json is treated as a single page
    on_progress = on_progress or _noop
    on_progress("Fetching collections...")
    raw = await fetch_paged(client, origin, COLLECTIONS_PATH, on_progress, max_pages=1, cancel_event=cancel_event)
    return [Collection.model_validate(c) for c in raw]


async def fetch_collection_products(
    client: httpx.AsyncClient,
    origin: str,
    handle: str,
    on_progress: Optional[ProgressCallback] = None,
    max_pages: Optional[int] = None,
) -> List[Product]:
    path = COLLECTION_PRODUCTS_PATH.format(handle=handle)
    raw = await fetch_paged(client, origin, path, on_progress, max_pages=max_pages, key="products")
    return [Product.model_validate(p) for p in raw]


def usable_collections(collections: Iterable[Collection], max_collections: Optional[int] = None) -> List[Collection]:
    # upstream sometimes lists collections without a handle; they can't be browsed
    out = [c for c in collections if c.handle]
    if max_collections is not None:
        out = out[:max_collections]
    return out


def build_vendor_facets(products: Iterable[Product]) -> List[VendorFacet]:
    counts = Counter(p.vendor if p.vendor is not None else "" for p in products)
    return [VendorFacet(name=name, count=counts[name]) for name in sorted(counts)]


def build_product_types(products: Iterable[Product]) -> List[str]:
    return sorted({p.product_type if p.product_type is not None else "" for p in products})


def build_catalog(products: List[Product], collections: List[Collection]) -> Catalog:
    return Catalog(
        products=products,
        collections=collections,
        vendors=build_vendor_facets(products),
        product_types=build_product_types(products),
    )


def catalog_from_cache(payload: Dict[str, Any]) -> Catalog:
    """Rebuild a full catalog (with facets) from a persisted {products, collections} payload."""
    products = [Product.model_validate(p) for p in payload.get("products") or []]
    collections = [Collection.model_validate(c) for c in payload.get("collections") or []]
    return build_catalog(products, collections)


async def scrape_store(
    client: httpx.AsyncClient,
    origin: str,
    on_progress: Optional[ProgressCallback] = None,
    max_product_pages: Optional[int] = None,
    max_collections: Optional[int] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> Catalog:
    """Fetch products and collections side by side and derive the facets."""
    products_task = asyncio.ensure_future(
        fetch_all_products(client, origin, on_progress, max_pages=max_product_pages, cancel_event=cancel_event)
    )
    collections_task = asyncio.ensure_future(
        fetch_all_collections(client, origin, on_progress, cancel_event=cancel_event)
    )
    try:
        products, collections = await asyncio.gather(products_task, collections_task)
    except BaseException:
        for task in (products_task, collections_task):
            task.cancel()
        raise
    collections = usable_collections(collections, max_collections)
    logger.info("Scraped %s: %d products, %d collections", origin, len(products), len(collections))
    return build_catalog(products, collections)
