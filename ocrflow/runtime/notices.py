from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Literal, Optional

NoticeKind = Literal["success", "error"]


@dataclass(frozen=True)
class Notice:
    kind: NoticeKind
    text: str


class NoticeBoard:
    """Latest user-facing message; cleared ``ttl_s`` seconds after it was posted."""

    def __init__(self, *, ttl_s: float = 3.0) -> None:
        self.ttl_s = ttl_s
        self._current: Optional[Notice] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def current(self) -> Optional[Notice]:
        return self._current

    def success(self, text: str) -> Notice:
        return self._post(Notice(kind="success", text=text))

    def error(self, text: str) -> Notice:
        return self._post(Notice(kind="error", text=text))

    def clear(self) -> None:
        self._cancel_timer()
        self._current = None

    def _post(self, notice: Notice) -> Notice:
        self._cancel_timer()
        self._current = notice
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # outside the loop nothing can fire the timer; caller clears it
            return notice
        self._timer = loop.call_later(self.ttl_s, self._expire, notice)
        return notice

    def _expire(self, notice: Notice) -> None:
        if self._current is notice:
            self._current = None
        self._timer = None

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
