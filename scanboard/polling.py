from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from scanboard.analysis_status import is_terminal_status

logger = logging.getLogger(__name__)

POLLING_INTERVAL_S = 3.0


def default_url_for(analysis_id: str) -> str:
    return f"/api/analyses/{analysis_id}"


@dataclass(frozen=True)
class PollingState:
    analysis: dict[str, Any] | None
    is_terminal: bool
    is_loading: bool


class AnalysisPoller:
    """Mirror one analysis' server state for a reactive UI.

    ``update()`` is the "inputs changed" hook and must be called from inside
    a running event loop. While enabled, with an id and a non-terminal
    status, the poller fetches immediately and then once per interval. The
    loop is sequential: a slow response pushes the next tick back instead of
    overlapping it. Fetch failures leave the last known state in place.

    Every cycle carries a generation number; cancelling a cycle bumps it, so
    a response belonging to an older id or an older cycle is never applied.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        url_for: Callable[[str], str] = default_url_for,
        interval_s: float = POLLING_INTERVAL_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_change: Callable[[PollingState], None] | None = None,
    ) -> None:
        self._client = client
        self._url_for = url_for
        self.interval_s = float(interval_s)
        self._sleep = sleep
        self._on_change = on_change
        self._analysis_id: str | None = None
        self._enabled = False
        self._analysis: dict[str, Any] | None = None
        self._terminal = False
        self._loading = False
        self._task: asyncio.Task[None] | None = None
        self._generation = 0
        self._closed = False

    @property
    def analysis(self) -> dict[str, Any] | None:
        return self._analysis

    @property
    def is_terminal(self) -> bool:
        return self._terminal

    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def state(self) -> PollingState:
        return PollingState(analysis=self._analysis, is_terminal=self._terminal, is_loading=self._loading)

    def update(self, analysis_id: str | None, *, enabled: bool = True) -> None:
        if self._closed:
            return
        if analysis_id != self._analysis_id:
            self._cancel()
            self._analysis_id = analysis_id
            self._analysis = None
            self._terminal = False
            self._notify()
        self._enabled = enabled

        if not enabled or analysis_id is None:
            self._cancel()
            return
        if self._terminal or self.is_running:
            return

        self._generation += 1
        self._task = asyncio.get_running_loop().create_task(self._run(analysis_id, self._generation))

    async def aclose(self) -> None:
        """Stop polling for good; nothing is applied after this returns."""
        task = self._task
        self._closed = True
        self._cancel()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _cancel(self) -> None:
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        if self._loading:
            self._loading = False
            self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.state)

    def _current(self, generation: int) -> bool:
        return generation == self._generation

    async def _run(self, analysis_id: str, generation: int) -> None:
        while True:
            await self._poll_once(analysis_id, generation)
            if not self._current(generation) or self._terminal:
                return
            await self._sleep(self.interval_s)
            if not self._current(generation):
                return

    async def _poll_once(self, analysis_id: str, generation: int) -> None:
        self._loading = True
        self._notify()
        try:
            data = await self._fetch(analysis_id)
        finally:
            if self._current(generation):
                self._loading = False
                self._notify()
        if data is None or not self._current(generation):
            return
        self._analysis = data
        self._terminal = is_terminal_status(data.get("status"))
        self._notify()

    async def _fetch(self, analysis_id: str) -> dict[str, Any] | None:
        try:
            response = await self._client.get(self._url_for(analysis_id))
            if not response.is_success:
                logger.debug("poll_failed analysis_id=%s http_status=%s", analysis_id, response.status_code)
                return None
            body = response.json()
        except Exception as exc:
            logger.debug("poll_failed analysis_id=%s error=%s", analysis_id, type(exc).__name__)
            return None
        if not isinstance(body, dict) or body.get("success") is not True:
            logger.debug("poll_failed analysis_id=%s reason=envelope", analysis_id)
            return None
        data = body.get("data")
        if not isinstance(data, dict):
            return None
        return data
