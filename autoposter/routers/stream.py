"""
Server-Sent Events stream of pipeline progress

Frames:
- default (unnamed):  data: <snapshot json>       on connect and on every event
- event: log          data: <log entry json>      for each new job log line
- event: done         data: {}                    when a run finishes; the stream then ends
- comment             : keep-alive                after keepalive_sec without traffic
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from ..orchestrator import PipelineOrchestrator, Subscription
from ..orchestrator.events import PipelineEvent
from . import get_orchestrator

router = APIRouter(prefix="/api/pipeline", tags=["pipeline"])
logger = logging.getLogger(__name__)

KEEPALIVE_FRAME = ": keep-alive\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(data: Any, event: Optional[str] = None) -> str:
    """One SSE frame; data is JSON encoded"""
    payload = json.dumps(data, ensure_ascii=False)
    if event:
        return f"event: {event}\ndata: {payload}\n\n"
    return f"data: {payload}\n\n"


class PipelineEventStream:
    """
    Adapts hub events to SSE frames for one client.

    The hub listener only enqueues (it runs inside broadcast() and must not
    block); frames() drains the queue onto the transport. The subscription
    is dropped after the done frame, on disconnect, or when the transport
    fails and the generator is closed.
    """

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        keepalive_sec: float = 15,
        queue_size: int = 1000,
        logger: Optional[logging.Logger] = None
    ):
        self.orchestrator = orchestrator
        self.keepalive_sec = keepalive_sec
        self.logger = logger or logging.getLogger(__name__)

        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._subscription: Optional[Subscription] = None
        self._closed = False

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def open(self):
        """Queue the current snapshot, then start listening"""
        self._put(format_sse(self.orchestrator.get_status()))
        self._subscription = self.orchestrator.subscribe(self._on_event)

    def close(self):
        self._closed = True
        if self._subscription is not None:
            if self.orchestrator.unsubscribe(self._subscription):
                self.logger.debug(f"[SSE] Unsubscribed listener {self._subscription.id}")

    def _on_event(self, snapshot: Dict[str, Any], event: PipelineEvent):
        self._put(format_sse(snapshot))
        if event.type == "log":
            self._put(format_sse(event.entry.to_dict(), event="log"))
        elif event.type == "done":
            self._put(format_sse({}, event="done"))
            # The hub never drops listeners on its own
            self.close()

    def _put(self, frame: str):
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            # Slow client - drop oldest and add new
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            self._queue.put_nowait(frame)

    async def frames(self, request: Optional[Request] = None) -> AsyncIterator[str]:
        """Yield frames until done, disconnect, or the consumer closes the generator"""
        if self._subscription is None:
            self.open()

        try:
            while True:
                if self._closed and self._queue.empty():
                    return
                try:
                    frame = await asyncio.wait_for(self._queue.get(), timeout=self.keepalive_sec)
                except asyncio.TimeoutError:
                    if request is not None and await request.is_disconnected():
                        self.logger.debug("[SSE] Client disconnected")
                        return
                    yield KEEPALIVE_FRAME
                    continue
                yield frame
        finally:
            self.close()


@router.get("/stream")
async def stream_pipeline(
    request: Request,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    """Stream pipeline snapshots and log lines as Server-Sent Events."""
    stream = PipelineEventStream(orchestrator, keepalive_sec=orchestrator.config.keepalive_sec)
    return StreamingResponse(
        stream.frames(request),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
