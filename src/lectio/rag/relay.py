"""Stream relay: forward SSE frames to the client and persist the full reply once.

The relay is a single generator. Each frame from the source is handed to the
client and fed to the accumulator in the same loop step, so what is persisted
is exactly what was emitted. Persistence runs after the source signals
completion and at most once per relay.

Client disconnect: the server closes the generator (GeneratorExit), typically
from the event loop. The relay hands the rest of the source to a worker
thread, which drains it without yielding and persists the full text, so a
reader who leaves early still gets the answer in their transcript. A source
failure persists nothing. A relay dropped before its first frame persists
nothing and closes its source.
"""

from __future__ import annotations

import json
import logging
import threading
import weakref
from typing import Callable, Iterator

logger = logging.getLogger(__name__)

_DATA_PREFIX = "data:"
_DONE = "[DONE]"


class FrameAccumulator:
    """Collect the ``response`` text deltas carried by SSE ``data:`` frames."""

    def __init__(self) -> None:
        self._parts: list[str] = []
        self.done = False

    def feed(self, frame: str | bytes) -> None:
        """Parse one forwarded frame; malformed frames are ignored."""
        if isinstance(frame, bytes):
            frame = frame.decode("utf-8", errors="replace")
        for line in frame.splitlines():
            line = line.strip()
            if not line.startswith(_DATA_PREFIX):
                continue
            payload = line[len(_DATA_PREFIX):].strip()
            if payload == _DONE:
                self.done = True
                continue
            try:
                data = json.loads(payload)
            except ValueError:
                continue
            if isinstance(data, dict) and isinstance(data.get("response"), str):
                self._parts.append(data["response"])

    @property
    def text(self) -> str:
        return "".join(self._parts)


class StreamRelay:
    """Iterable response body that tees *source* into an accumulator.

    Args:
        source: Iterator of SSE frames (see lectio.rag.llm_client.stream_sse).
        on_complete: Called once with the full text after the source ends.
    """

    def __init__(self, source: Iterator[str], on_complete: Callable[[str], None]) -> None:
        self._source = source
        self._on_complete = on_complete
        self._accumulator = FrameAccumulator()
        self._persisted = False
        self._started = False
        self._drainer: threading.Thread | None = None
        # Releases the provider stream when the relay is dropped unread.
        self._finalizer = weakref.finalize(self, _close_source, source)

    @property
    def text(self) -> str:
        return self._accumulator.text

    @property
    def persisted(self) -> bool:
        return self._persisted

    def __iter__(self) -> Iterator[str]:
        self._started = True
        try:
            for frame in self._source:
                self._accumulator.feed(frame)
                yield frame
        except GeneratorExit:
            # Closed by the server, usually on the event loop: never block here.
            logger.info("Client disconnected; draining generation stream in the background")
            self._drainer = threading.Thread(
                target=self._drain, name="lectio-relay-drain", daemon=False
            )
            self._drainer.start()
            raise
        except Exception:
            logger.exception("Generation stream failed; reply not persisted")
            return
        self._complete()

    def close(self) -> None:
        """Release the source if the relay was never iterated."""
        if not self._started:
            self._finalizer()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until a background drain has finished. Returns False on timeout."""
        if self._drainer is None:
            return True
        self._drainer.join(timeout)
        return not self._drainer.is_alive()

    def _drain(self) -> None:
        try:
            for frame in self._source:
                self._accumulator.feed(frame)
        except Exception:
            logger.exception("Generation stream failed after disconnect; reply not persisted")
            return
        self._complete()

    def _complete(self) -> None:
        if self._persisted:
            return
        self._persisted = True
        try:
            self._on_complete(self._accumulator.text)
        except Exception:
            logger.exception("Failed to persist streamed reply")


def _close_source(source: Iterator[str]) -> None:
    close = getattr(source, "close", None)
    if close is not None:
        close()
