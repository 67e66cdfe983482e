"""
Live terminal status view for project2prompt.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import shutil
import sys
import time
from typing import Any, Callable, List, Optional, TextIO

from colorama import Cursor
from colorama.ansi import clear_screen

from .core import DEFAULT_SCREEN_MARGIN, TreeContext, TreeNode, dim, render_tree, summarize

logger = logging.getLogger(__name__)


class PeriodicRunner:
    """
    Call *action* repeatedly, at least *min_interval* seconds apart.

    The next call is scheduled only once the current one has finished, so a
    slow action delays the following one instead of overlapping it. *action*
    receives the runner and may be a plain function or a coroutine function.
    """

    def __init__(self, action: Callable[["PeriodicRunner"], Any], min_interval: float) -> None:
        self.action = action
        self.min_interval = min_interval
        self.state = "idle"
        self._timer: Optional[asyncio.TimerHandle] = None
        self._stopped = False
        self._inflight: Optional["asyncio.Future[None]"] = None

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def start(self) -> None:
        self._cancel_timer()
        self._stopped = False
        self.state = "running"
        if self._inflight is not None and not self._inflight.done():
            # the running invocation schedules its own successor
            return
        self._fire()

    def stop(self) -> None:
        self._stopped = True
        self.state = "stopped"
        self._cancel_timer()

    async def wait_idle(self) -> None:
        """Wait for an in-flight asynchronous invocation, if any, to finish."""
        if self._inflight is not None and not self._inflight.done():
            await self._inflight

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        if self._stopped:
            return
        started = time.monotonic()
        result = self.action(self)
        if inspect.isawaitable(result):
            self._inflight = asyncio.ensure_future(self._finish(result, started))
        else:
            self._schedule(started)

    async def _finish(self, result: Any, started: float) -> None:
        try:
            await result
        except Exception:
            logger.exception("Periodic action failed")
        self._schedule(started)

    def _schedule(self, started: float) -> None:
        if self._stopped:
            return
        wait = max(self.min_interval - (time.monotonic() - started), 0)
        self._timer = asyncio.get_running_loop().call_later(wait, self._fire)


class StatusReporter:
    """Repaint the walk counters and the partial tree in place."""

    def __init__(
        self,
        root: TreeNode,
        ctx: TreeContext,
        stream: Optional[TextIO] = None,
        rows: Optional[int] = None,
        margin: int = DEFAULT_SCREEN_MARGIN,
    ) -> None:
        self.root = root
        self.ctx = ctx
        self.stream = stream
        self.rows = rows if rows is not None else shutil.get_terminal_size().lines
        self.margin = margin
        self.written_lines = 0

    def render(self) -> List[str]:
        status = ", ".join(f"{dim(key + ':')} {value}" for key, value in summarize(self.ctx).items())
        lines = f"{status}\n{render_tree(self.root, '', True)}".split("\n")
        return lines[: max(self.rows - self.margin, 1)]

    def __call__(self, runner: Optional[PeriodicRunner] = None) -> None:
        stream = self.stream or sys.stdout
        if self.written_lines:
            stream.write(Cursor.UP(self.written_lines))
        stream.write(clear_screen(0))
        lines = self.render()
        stream.write("\n".join(lines) + "\n")
        stream.flush()
        self.written_lines = len(lines)
