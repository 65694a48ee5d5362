# shopmate/routers/stores.py
import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from shopmate.auth import get_current_user, require_user
from shopmate.config import CONSOLE_MAX_COLLECTIONS, CONSOLE_PAGE_LIMIT
from shopmate.dependencies import get_http_client, get_storage
from shopmate.routers.scrape import persist_catalog, require_origin
from shopmate.scraper import ScrapeError, scrape_store
from shopmate.storage import Storage
from shopmate.utils import host_from_url, product_search_text

logger = logging.getLogger(__name__)

router = APIRouter()


class StoreRequest(BaseModel):
    shopUrl: Optional[str] = None


def _dump_stores(storage: Storage, email: str) -> List[Dict[str, Any]]:
    return [s.model_dump(by_alias=True, exclude_none=True) for s in storage.get_stores(email)]


@router.get("/api/stores")
async def list_stores(email: Optional[str] = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    if not email:
        return {"stores": []}
    return {"stores": _dump_stores(storage, email)}


@router.post("/api/stores")
async def add_store(req: StoreRequest, email: str = Depends(require_user), storage: Storage = Depends(get_storage)):
    origin = require_origin(req.shopUrl)
    storage.add_store(email, origin)
    return {"ok": True, "stores": _dump_stores(storage, email)}


@router.delete("/api/stores")
async def remove_store(req: StoreRequest, email: str = Depends(require_user), storage: Storage = Depends(get_storage)):
    origin = require_origin(req.shopUrl)
    storage.remove_store(email, origin)
    return {"ok": True, "stores": _dump_stores(storage, email)}


@router.post("/api/stores/refresh")
async def refresh_store(
    req: StoreRequest,
    email: str = Depends(require_user),
    storage: Storage = Depends(get_storage),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    origin = require_origin(req.shopUrl)
    try:
        catalog = await scrape_store(client, origin)
    except ScrapeError as e:
        logger.warning("Refresh of %s failed: %s", origin, e)
        raise HTTPException(status_code=500, detail=f"Refresh failed: {e}")
    await asyncio.to_thread(persist_catalog, storage, email, origin, catalog)
    meta = next(s for s in storage.get_stores(email) if s.shop_url == origin)
    return {
        "ok": True,
        "lastUpdated": meta.last_updated,
        "productCount": meta.product_count,
        "collectionCount": meta.collection_count,
    }


@router.get("/api/store-cache/exists")
async def store_cache_exists(
    shopUrl: Optional[str] = None,
    email: Optional[str] = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    if not email or not shopUrl:
        return {"exists": False}
    origin = require_origin(shopUrl)
    cached = await asyncio.to_thread(storage.load_cached_scrape, email, origin)
    if cached is None:
        return {"exists": False}
    meta = next((s for s in storage.get_stores(email) if s.shop_url == origin), None)
    return {
        "exists": True,
        "productCount": len(cached.get("products") or []),
        "collectionCount": len(cached.get("collections") or []),
        "lastUpdated": meta.last_updated if meta else None,
    }


@router.get("/api/history")
async def history(email: Optional[str] = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    if not email:
        return {"history": []}
    return {"history": [h.model_dump(by_alias=True) for h in storage.get_history(email)]}


@router.get("/api/console-data")
async def console_data(
    page: int = 1,
    limit: int = CONSOLE_PAGE_LIMIT,
    store: str = "all",
    q: Optional[str] = None,
    email: Optional[str] = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    """Cached products of every store the user imported, tagged with their store."""
    empty = {"stores": [], "products": [], "collections": [], "totalProducts": 0, "totalCollections": 0, "hasMore": False}
    if not email:
        return empty
    page, limit = max(page, 1), max(limit, 1)

    stores = storage.get_stores(email)
    if store != "all":
        stores = [s for s in stores if store in s.shop_url]

    products: List[Dict[str, Any]] = []
    collections: List[Dict[str, Any]] = []
    for s in stores:
        data = await asyncio.to_thread(storage.load_cached_scrape, email, s.shop_url)
        if not data:
            continue
        meta = {"__storeUrl": s.shop_url, "__storeHost": host_from_url(s.shop_url)}
        products.extend({**p, **meta} for p in data.get("products") or [])
        collections.extend({**c, **meta} for c in data.get("collections") or [])

    if q and q.strip():
        needle = q.strip().lower()
        products = [p for p in products if needle in product_search_text(p)]

    start = (page - 1) * limit
    page_items = products[start:start + limit]
    return {
        "stores": [s.model_dump(by_alias=True, exclude_none=True) for s in stores],
        "products": page_items,
        "collections": collections[:CONSOLE_MAX_COLLECTIONS],
        "totalProducts": len(products),
        "totalCollections": len(collections),
        "hasMore": start + limit < len(products),
        "page": page,
        "limit": limit,
        "loadedProducts": len(page_items),
    }
