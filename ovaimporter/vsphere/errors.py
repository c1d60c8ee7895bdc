# SPDX-License-Identifier: LGPL-3.0-or-later
# ovaimporter/vsphere/errors.py
# -*- coding: utf-8 -*-
"""Error classification and exit code handling for OVA deployments"""
from __future__ import annotations

import errno
import socket
from enum import IntEnum

from ..core.exceptions import (
    BatchDeployError,
    DeployCancelledError,
    DeployTimeoutError,
    FinalizationError,
    OvaImporterError,
    ResolutionError,
    SourceError,
    SpecError,
    TransactionError,
    VsphereConnectError,
)


class ExitCode(IntEnum):
    OK = 0
    UNKNOWN = 1
    USAGE = 2

    CONNECT = 10
    RESOLUTION = 11
    NETWORK = 12

    SOURCE = 20
    SPEC = 30
    TRANSACTION = 31
    FINALIZATION = 32
    LOCAL_IO = 40

    TIMEOUT = 124
    INTERRUPTED = 130


_CATEGORY_CODES = (
    (VsphereConnectError, ExitCode.CONNECT),
    (ResolutionError, ExitCode.RESOLUTION),
    (SourceError, ExitCode.SOURCE),
    (SpecError, ExitCode.SPEC),
    (TransactionError, ExitCode.TRANSACTION),
    (FinalizationError, ExitCode.FINALIZATION),
    (DeployTimeoutError, ExitCode.TIMEOUT),
    (DeployCancelledError, ExitCode.INTERRUPTED),
)


def _is_network_error(e: BaseException) -> bool:
    if isinstance(e, (socket.timeout, TimeoutError, ConnectionError)):
        return True
    if isinstance(e, OSError) and e.errno in (
        errno.ECONNREFUSED,
        errno.ETIMEDOUT,
        errno.EHOSTUNREACH,
        errno.ENETUNREACH,
        errno.ECONNRESET,
    ):
        return True
    msg = str(e).lower()
    needles = [
        "timed out",
        "connection refused",
        "connection reset",
        "name or service not known",
        "temporary failure in name resolution",
        "certificate verify failed",
    ]
    return any(n in msg for n in needles)


def _is_local_io_error(e: BaseException) -> bool:
    if isinstance(e, OSError) and e.errno in (
        errno.EACCES,
        errno.EPERM,
        errno.ENOSPC,
        errno.EROFS,
        errno.EDQUOT,
    ):
        return True
    msg = str(e).lower()
    needles = ["no space left", "permission denied", "read-only file system"]
    return any(n in msg for n in needles)


def classify_exit_code(e: BaseException) -> ExitCode:
    if isinstance(e, KeyboardInterrupt):
        return ExitCode.INTERRUPTED

    # a batch exits with its first failure's code
    if isinstance(e, BatchDeployError) and e.cause is not None:
        return classify_exit_code(e.cause)

    if isinstance(e, OvaImporterError):
        for cls, code in _CATEGORY_CODES:
            if isinstance(e, cls):
                return code
        if e.code in ExitCode._value2member_map_:
            return ExitCode(e.code)
        return ExitCode.UNKNOWN

    if isinstance(e, SystemExit):
        return ExitCode.USAGE if e.code == 2 else ExitCode.UNKNOWN
    if _is_local_io_error(e):
        return ExitCode.LOCAL_IO
    if _is_network_error(e):
        return ExitCode.NETWORK

    return ExitCode.UNKNOWN
