# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovaimporter/core/utils.py
"""
Small shared helpers: TTY detection, console creation, size formatting.
"""
from __future__ import annotations

import sys
from typing import Optional

from rich.console import Console


def is_tty(stream=None) -> bool:
    """
    Check if the specified stream (or stdout by default) is a TTY.

    Args:
        stream: File object to check (defaults to sys.stdout)

    Returns:
        True if stream is a TTY, False otherwise
    """
    if stream is None:
        stream = sys.stdout
    isatty = getattr(stream, "isatty", None)
    return bool(isatty()) if callable(isatty) else False


def create_console() -> Optional[Console]:
    """
    Create a Rich Console object for formatted output.

    Returns None when stdout is not a TTY (CI logs, pipes).
    """
    if not is_tty():
        return None
    return Console(stderr=False)


def human_bytes(n: Optional[int]) -> str:
    if n is None:
        return "unknown"
    x = float(n)
    for unit in ["B", "KiB", "MiB", "GiB", "TiB", "PiB"]:
        if x < 1024 or unit == "PiB":
            return f"{x:.2f} {unit}" if unit != "B" else f"{int(x)} {unit}"
        x /= 1024
    return f"{n} B"
