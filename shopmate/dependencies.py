# shopmate/dependencies.py
import httpx
from fastapi import Request

from shopmate.session_cache import TTLCache
from shopmate.storage import Storage
from shopmate.streaming import JobRegistry


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_job_registry(request: Request) -> JobRegistry:
    return request.app.state.jobs


def get_session_cache(request: Request) -> TTLCache:
    return request.app.state.sessions
