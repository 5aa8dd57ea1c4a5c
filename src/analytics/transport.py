import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Set, Tuple

import httpx

from src.analytics.config import LOG_PREFIX

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """A payload could not be delivered."""


class HttpTransport:
    """
    Posts JSON payloads to the analytics endpoints from the running event loop.

    `post` only schedules the request and returns at once, so a slow or dead
    collector never stalls event ingestion. Failures surface in the task's
    done-callback, where they are logged. There is no retry.
    """

    def __init__(self, timeout_s: float = 2.0, client: Optional[httpx.AsyncClient] = None,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._loop = loop
        self._inflight: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._inflight)

    def post(self, url: str, payload: Dict[str, Any]):
        # Raises RuntimeError outside a running loop; the caller logs it as a failed send
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(self._send(url, payload))
        self._inflight.add(task)
        task.add_done_callback(self._on_done)

    async def _send(self, url: str, payload: Dict[str, Any]):
        try:
            response = await self._client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(f"POST {url} failed: {e}") from e

    def _on_done(self, task: asyncio.Task):
        self._inflight.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"{LOG_PREFIX}{error}")

    async def aclose(self):
        """Wait for in-flight posts, then close the client."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
        await self._client.aclose()


class MemoryTransport:
    """Captures posted payloads instead of sending them (replay, tests)."""

    def __init__(self):
        self.requests: List[Tuple[str, Dict[str, Any]]] = []

    def post(self, url: str, payload: Dict[str, Any]):
        # Serialize to catch payloads that would not survive the wire
        self.requests.append((url, json.loads(json.dumps(payload))))

    def payloads(self, endpoint: str) -> List[Dict[str, Any]]:
        """Payloads posted to URLs ending with `endpoint` (e.g. "/auction")."""
        return [payload for url, payload in self.requests if url.endswith(endpoint)]

    def close(self):
        pass
