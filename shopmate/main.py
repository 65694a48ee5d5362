# shopmate/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from shopmate.config import DATA_DIR, LOG_LEVEL, SCRAPE_SESSION_TTL
from shopmate.routers.auth import router as auth_router
from shopmate.routers.cache import router as cache_router
from shopmate.routers.export import router as export_router
from shopmate.routers.lists import router as lists_router
from shopmate.routers.presets import router as presets_router
from shopmate.routers.scrape import router as scrape_router
from shopmate.routers.stores import router as stores_router
from shopmate.scraper import make_client
from shopmate.session_cache import TTLCache
from shopmate.storage import Storage
from shopmate.streaming import JobRegistry

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.storage = Storage(DATA_DIR)
    app.state.jobs = JobRegistry()
    app.state.sessions = TTLCache(ttl=SCRAPE_SESSION_TTL)
    async with make_client() as client:
        app.state.http_client = client
        yield


app = FastAPI(title="ShopMate Catalog Importer", lifespan=lifespan)

app.include_router(auth_router)
app.include_router(scrape_router)
app.include_router(stores_router)
app.include_router(lists_router)
app.include_router(presets_router)
app.include_router(export_router)
app.include_router(cache_router)

# root health
@app.get("/")
async def root():
    return {"ok": True, "message": "ShopMate Catalog Importer API"}

# If running directly (for convenience)
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("shopmate.main:app", host="0.0.0.0", port=8000, reload=True)
