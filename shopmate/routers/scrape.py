# shopmate/routers/scrape.py
import asyncio
import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ValidationError

from shopmate.auth import get_current_user
from shopmate.config import ANON_MAX_COLLECTIONS, ANON_MAX_PRODUCT_PAGES
from shopmate.dependencies import get_http_client, get_job_registry, get_session_cache, get_storage
from shopmate.models import Catalog, HistoryItem, dump_product
from shopmate.scraper import ScrapeError, catalog_from_cache, fetch_collection_products, scrape_store
from shopmate.session_cache import TTLCache
from shopmate.storage import Storage, utcnow_iso
from shopmate.streaming import JobRegistry, ScrapeJob, cached_events, event_stream_response
from shopmate.utils import host_from_url, normalize_origin

logger = logging.getLogger(__name__)

router = APIRouter()


class ScrapeRequest(BaseModel):
    shopUrl: Optional[str] = None
    force: bool = False


class CollectionProductsRequest(BaseModel):
    shopUrl: Optional[str] = None
    collectionHandle: Optional[str] = None


def require_origin(shop_url: Optional[str]) -> str:
    try:
        return normalize_origin(shop_url)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def persist_catalog(storage: Storage, email: str, origin: str, catalog: Catalog) -> None:
    """Register the store and log the import; the cached scrape is written last."""
    now = utcnow_iso()
    storage.add_store(email, origin)
    storage.upsert_store_meta(
        email,
        origin,
        last_updated=now,
        product_count=len(catalog.products),
        collection_count=len(catalog.collections),
    )
    storage.add_history(
        HistoryItem(
            email=email,
            shop_url=origin,
            date=now,
            product_count=len(catalog.products),
            collection_count=len(catalog.collections),
        )
    )
    wire = catalog.to_wire()
    storage.save_cached_scrape(email, origin, {"products": wire["products"], "collections": wire["collections"]})


def scrape_runner(client: httpx.AsyncClient, storage: Storage, origin: str, email: Optional[str]):
    limits = {}
    if not email:
        limits = {"max_product_pages": ANON_MAX_PRODUCT_PAGES, "max_collections": ANON_MAX_COLLECTIONS}

    async def run(job: ScrapeJob) -> Catalog:
        job.publish_message("Starting scrape...")
        catalog = await scrape_store(client, origin, job.publish_message, cancel_event=job.cancel_event, **limits)
        job.publish_message("Data processing complete.")
        if email:
            await asyncio.to_thread(persist_catalog, storage, email, origin, catalog)
        return catalog

    return run


@router.post("/api/scrape-stream")
async def scrape_stream(
    req: ScrapeRequest,
    email: Optional[str] = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
    client: httpx.AsyncClient = Depends(get_http_client),
    jobs: JobRegistry = Depends(get_job_registry),
):
    origin = require_origin(req.shopUrl)
    if email and not req.force:
        cached = await asyncio.to_thread(storage.load_cached_scrape, email, origin)
        if cached is not None:
            try:
                catalog = catalog_from_cache(cached)
            except ValidationError as e:
                logger.warning("Ignoring invalid cached scrape of %s for %s: %s", origin, email, e)
            else:
                logger.info("Serving cached scrape of %s for %s", origin, email)
                return event_stream_response(cached_events(host_from_url(origin), catalog))
    job = jobs.start((email, origin), scrape_runner(client, storage, origin, email))
    return event_stream_response(job.stream())


@router.post("/api/scrape")
async def start_scrape(
    req: ScrapeRequest,
    email: Optional[str] = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
    client: httpx.AsyncClient = Depends(get_http_client),
    jobs: JobRegistry = Depends(get_job_registry),
    sessions: TTLCache = Depends(get_session_cache),
):
    """Start a scrape in the background; progress is read from /api/stream."""
    origin = require_origin(req.shopUrl)
    job = jobs.start((email, origin), scrape_runner(client, storage, origin, email), cancel_on_disconnect=False)
    sessions.set(job.id, job)
    return {"sessionId": job.id}


@router.get("/api/stream")
async def stream_session(sessionId: Optional[str] = None, sessions: TTLCache = Depends(get_session_cache)):
    if not sessionId:
        raise HTTPException(status_code=400, detail="Missing sessionId")
    job = sessions.get(sessionId)
    if job is None:
        raise HTTPException(status_code=404, detail="Unknown or expired sessionId")
    return event_stream_response(job.stream())


@router.post("/api/collection-products")
async def collection_products(
    req: CollectionProductsRequest,
    email: Optional[str] = Depends(get_current_user),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    if not req.shopUrl or not req.collectionHandle:
        raise HTTPException(status_code=400, detail="shopUrl and collectionHandle are required")
    origin = require_origin(req.shopUrl)
    max_pages = None if email else ANON_MAX_PRODUCT_PAGES
    try:
        products = await fetch_collection_products(client, origin, req.collectionHandle, max_pages=max_pages)
    except ScrapeError as e:
        logger.warning("Collection fetch failed for %s/%s: %s", origin, req.collectionHandle, e)
        raise HTTPException(status_code=500, detail=f"internal error: {e}")
    return {"products": [dump_product(p) for p in products]}
