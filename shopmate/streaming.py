# shopmate/streaming.py
"""Progress stream for scrapes: ``data: <JSON>\\n\\n`` events, one terminal event per job."""
import asyncio
import json
import logging
import uuid
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Hashable, List, Optional

from fastapi.responses import StreamingResponse

from shopmate.models import Catalog
from shopmate.scraper import ScrapeCancelled

logger = logging.getLogger(__name__)

STREAM_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}


def encode_event(event: Dict[str, Any]) -> str:
    return f"data: {json.dumps(event)}\n\n"


def is_terminal(event: Dict[str, Any]) -> bool:
    return bool(event.get("finished")) or "error" in event


def event_stream_response(events: AsyncIterator[str]) -> StreamingResponse:
    return StreamingResponse(events, media_type="text/event-stream", headers=STREAM_HEADERS)


async def cached_events(host: str, catalog: Catalog) -> AsyncIterator[str]:
    yield encode_event({"message": f"Loaded cached data for {host}."})
    yield encode_event({"finished": True, "data": catalog.to_wire()})


Runner = Callable[["ScrapeJob"], Awaitable[Catalog]]


class ScrapeJob:
    def __init__(self, key: Hashable, cancel_on_disconnect: bool = True):
        self.id = uuid.uuid4().hex
        self.key = key
        self.cancel_on_disconnect = cancel_on_disconnect
        self.cancel_event = asyncio.Event()
        self.events: List[Dict[str, Any]] = []
        self.done = False
        self.task: Optional[asyncio.Task] = None
        self._subscribers: List[asyncio.Queue] = []

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def publish_message(self, message: str) -> None:
        self._publish({"message": message})

    def _publish(self, event: Dict[str, Any]) -> None:
        if self.done:
            return
        self.events.append(event)
        for queue in self._subscribers:
            queue.put_nowait(event)
        if is_terminal(event):
            self.done = True
            self._subscribers.clear()

    async def run(self, runner: Runner) -> None:
        try:
            catalog = await runner(self)
        except ScrapeCancelled as e:
            logger.info("Scrape %s cancelled: %s", self.key, e)
            self._publish({"error": "Scrape cancelled"})
        except asyncio.CancelledError:
            self._publish({"error": "Scrape cancelled"})
            raise
        except Exception as e:
            logger.exception("Scraping error for %s", self.key)
            self._publish({"error": str(e) or e.__class__.__name__})
        else:
            self._publish({"finished": True, "data": catalog.to_wire()})

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        for event in self.events:
            queue.put_nowait(event)
        if not self.done:
            self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)
        if self.cancel_on_disconnect and not self.done and not self._subscribers:
            logger.info("All listeners left scrape %s, cancelling", self.key)
            self.cancel_event.set()

    async def stream(self) -> AsyncIterator[str]:
        queue = self.subscribe()
        try:
            while True:
                event = await queue.get()
                yield encode_event(event)
                if is_terminal(event):
                    return
        finally:
            self.unsubscribe(queue)


class JobRegistry:
    """Tracks in-flight scrapes so requests for the same key share one job."""

    def __init__(self):
        self._jobs: Dict[Hashable, ScrapeJob] = {}

    def get(self, key: Hashable) -> Optional[ScrapeJob]:
        job = self._jobs.get(key)
        if job is None or job.done or job.cancelled:
            return None
        return job

    def start(self, key: Hashable, runner: Runner, cancel_on_disconnect: bool = True) -> ScrapeJob:
        job = self.get(key)
        if job is not None:
            logger.info("Joining in-flight scrape %s", key)
            return job
        job = ScrapeJob(key, cancel_on_disconnect=cancel_on_disconnect)
        self._jobs[key] = job
        logger.info("Starting scrape %s (job %s)", key, job.id)
        job.task = asyncio.create_task(job.run(runner))
        job.task.add_done_callback(lambda _: self._release(job))
        return job

    def _release(self, job: ScrapeJob) -> None:
        if self._jobs.get(job.key) is job:
            del self._jobs[job.key]

    def in_flight(self) -> List[Hashable]:
        return [k for k, job in self._jobs.items() if not job.done]
