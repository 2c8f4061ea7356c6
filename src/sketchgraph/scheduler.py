"""Debounced render scheduling onto output surfaces."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Optional, Tuple

from .config import DEFAULT_DELAY
from .errors import PIPELINE_ERRORS, ParseError
from .render import RenderedScene
from .surface import Surface

logger = logging.getLogger(__name__)

PipelineFn = Callable[[str], RenderedScene]
ErrorCallback = Callable[[Exception], None]


class RenderScheduler:
    """Coalesces bursts of render requests into one pipeline run per surface.

    Each ``schedule`` call cancels the surface's pending timer before arming a
    new one, so superseded requests never execute. The pipeline runs
    synchronously inside the timer callback; on success the scene replaces the
    surface's mounted output, on failure the surface is left alone and the
    error goes to the log and to ``on_error``.
    """

    def __init__(
        self,
        pipeline: PipelineFn,
        *,
        delay: float = DEFAULT_DELAY,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        if delay < 0:
            raise ValueError(f"delay must be >= 0 (got {delay})")
        self.pipeline = pipeline
        self.delay = delay
        self.on_error = on_error
        self.run_count = 0
        self._loop = loop
        self._pending: Dict[int, Tuple[Surface, asyncio.TimerHandle]] = {}

    def schedule(self, text: str, surface: Surface) -> None:
        key = id(surface)
        previous = self._pending.pop(key, None)
        if previous is not None:
            previous[1].cancel()
            logger.debug("superseded pending render for surface %#x", key)
        loop = self._loop or asyncio.get_running_loop()
        handle = loop.call_later(self.delay, self._run, text, surface)
        self._pending[key] = (surface, handle)

    def cancel(self, surface: Optional[Surface] = None) -> None:
        """Cancel the pending request for ``surface``, or every pending request."""
        if surface is None:
            entries = list(self._pending.values())
            self._pending.clear()
        else:
            entry = self._pending.pop(id(surface), None)
            entries = [entry] if entry is not None else []
        for _surface, handle in entries:
            handle.cancel()

    def pending(self, surface: Surface) -> bool:
        return id(surface) in self._pending

    @property
    def idle(self) -> bool:
        return not self._pending

    def _run(self, text: str, surface: Surface) -> None:
        self._pending.pop(id(surface), None)
        self.run_count += 1
        try:
            scene = self.pipeline(text)
        except PIPELINE_ERRORS as exc:
            if isinstance(exc, ParseError):
                logger.warning("description not rendered: %s", exc)
            else:
                logger.error("render failed [%s]: %s", exc.code, exc)
            self._report(exc)
            return
        try:
            surface.replace(scene)
        except OSError as exc:
            logger.error("failed to mount rendered scene: %s", exc)
            self._report(exc)

    def _report(self, exc: Exception) -> None:
        if self.on_error is not None:
            self.on_error(exc)
