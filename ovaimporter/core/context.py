# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovaimporter/core/context.py
"""
Cancellable execution context shared by every blocking step of a deployment.

A DeployContext combines an optional deadline with a cancel flag. Engine code
calls `ctx.check("<operation>")` before each management-plane call and while
streaming, and uses `ctx.remaining()` as the timeout for HTTP requests.
"""
from __future__ import annotations

import threading
import time
from typing import Optional

from .exceptions import DeployCancelledError, DeployTimeoutError


class DeployContext:
    def __init__(self, timeout_s: Optional[float] = None, *, clock=time.monotonic) -> None:
        self._clock = clock
        self._deadline = (clock() + float(timeout_s)) if timeout_s is not None else None
        self._cancelled = threading.Event()
        self.timeout_s = timeout_s

    @classmethod
    def background(cls) -> "DeployContext":
        """Context with no deadline; only explicit cancel() stops it."""
        return cls(None)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when unbounded."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def check(self, operation: str) -> None:
        if self._cancelled.is_set():
            raise DeployCancelledError(msg=f"{operation}: cancelled", context={"operation": operation})
        if self.expired:
            raise DeployTimeoutError(
                msg=f"{operation}: deadline exceeded after {self.timeout_s}s",
                context={"operation": operation, "timeout_s": self.timeout_s},
            )

    def sleep(self, seconds: float, operation: str) -> None:
        """Sleep up to `seconds`, waking early on cancel; raises if the context ended."""
        end = self._clock() + seconds
        while True:
            self.check(operation)
            now = self._clock()
            if now >= end:
                return
            rem = self.remaining()
            wait_s = end - now if rem is None else min(end - now, rem)
            self._cancelled.wait(max(0.0, wait_s))
