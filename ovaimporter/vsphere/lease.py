# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovaimporter/vsphere/lease.py
"""
HttpNfcLease import data plane.

Control plane (pyVmomi): ImportVApp -> wait for ready -> progress keepalive
-> HttpNfcLeaseComplete / HttpNfcLeaseAbort.

Data plane (requests): one PUT/POST per lease device URL carrying the disk
payload streamed straight from the OVA.

Notes:
  - device URLs may use '*' as host; it is replaced by the vCenter host.
  - uploads authenticate with the session's vmware_soap_session cookie.
  - the lease times out if progress is not reported; LeaseUpdater must run
    for the whole upload phase.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlsplit, urlunsplit

import requests
from pyVmomi import vim

from .. import __version__
from ..core.exceptions import TransactionError
from ..core.utils import human_bytes
from .archive import ArchiveEntry
from .import_spec import fault_message

log = logging.getLogger("ovaimporter.lease")

STREAM_VMDK_CONTENT_TYPE = "application/x-vnd.vmware-streamVmdk"
LEASE_POLL_S = 0.5
LEASE_PROGRESS_INTERVAL_S = 2.0


@dataclass(frozen=True)
class LeaseItem:
    """One file the lease expects, paired with the URL that receives it."""

    path: str
    url: str
    import_key: str
    size: Optional[int] = None
    create: bool = False

    @property
    def method(self) -> str:
        return "PUT" if self.create else "POST"


# ---------------------------
# Control plane
# ---------------------------


def wait_for_lease(lease: Any, ctx: Any, *, poll_s: float = LEASE_POLL_S) -> Any:
    """Block until the lease is ready; returns lease.info."""
    while True:
        ctx.check("wait for lease")
        state = lease.state
        if state == vim.HttpNfcLease.State.ready:
            return lease.info
        if state == vim.HttpNfcLease.State.error:
            detail = fault_message(lease.error) if lease.error is not None else "unknown error"
            raise TransactionError(msg=f"lease entered error state: {detail}", context={"detail": detail})
        if state == vim.HttpNfcLease.State.done:
            raise TransactionError(msg="lease already completed or aborted")
        ctx.sleep(poll_s, "wait for lease")


def _resolve_host(url: str, host: str) -> str:
    parts = urlsplit(url)
    if parts.hostname != "*":
        return url
    netloc = host if parts.port is None else f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def lease_items(lease_info: Any, file_items: List[Any], host: str) -> List[LeaseItem]:
    """
    Pair every file item of the import spec with its device URL
    (fileItem.deviceId == deviceUrl.importKey).
    """
    urls: Dict[str, Any] = {str(d.importKey): d for d in (lease_info.deviceUrl or [])}
    out: List[LeaseItem] = []
    for fi in file_items or []:
        dev = urls.get(str(fi.deviceId))
        if dev is None:
            raise TransactionError(
                msg=f"lease has no device URL for {fi.path}",
                context={"item": fi.path, "device_id": fi.deviceId},
            )
        out.append(
            LeaseItem(
                path=str(fi.path),
                url=_resolve_host(str(dev.url), host),
                import_key=str(dev.importKey),
                size=getattr(fi, "size", None),
                create=bool(getattr(fi, "create", False)),
            )
        )
    return out


def complete_lease(lease: Any, ctx: Any) -> None:
    ctx.check("complete lease")
    try:
        lease.HttpNfcLeaseComplete()
    except Exception as e:
        raise TransactionError(msg=f"lease completion failed: {fault_message(e)}", cause=e) from e


def abort_lease(lease: Any, reason: BaseException) -> Optional[BaseException]:
    """
    Abort the lease after `reason`. Returns the abort failure, if any, so the
    caller can attach it to the error it is about to raise.
    """
    try:
        if lease.state in (vim.HttpNfcLease.State.error, vim.HttpNfcLease.State.done):
            log.debug("Lease already %s, not aborting", lease.state)
            return None
        lease.HttpNfcLeaseAbort()
        log.warning("Lease aborted: %s", reason)
        return None
    except Exception as e:
        log.error("Lease abort failed after %s: %s", type(reason).__name__, fault_message(e))
        return e


class LeaseUpdater:
    """
    Keeps the lease alive by reporting progress every `interval_s` seconds
    from a background thread. Use as a context manager; the thread is always
    stopped and joined on exit.
    """

    def __init__(self, lease: Any, total_bytes: int, *, interval_s: float = LEASE_PROGRESS_INTERVAL_S) -> None:
        self.lease = lease
        self.total_bytes = max(0, int(total_bytes or 0))
        self.interval_s = interval_s
        self._done = 0
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def add(self, n: int) -> None:
        with self._lock:
            self._done += n

    @property
    def percent(self) -> int:
        with self._lock:
            done = self._done
        if self.total_bytes <= 0:
            return 0
        return min(100, int(done * 100 / self.total_bytes))

    def _run(self) -> None:
        while not self._stop.wait(self.interval_s):
            try:
                self.lease.HttpNfcLeaseProgress(self.percent)
            except Exception as e:
                # the next upload or the completion call surfaces a dead lease
                log.debug("Lease progress update failed: %s", fault_message(e))

    def start(self) -> "LeaseUpdater":
        self._thread = threading.Thread(target=self._run, name="lease-updater", daemon=True)
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stop.set()
        t, self._thread = self._thread, None
        if t is not None:
            t.join()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def __enter__(self) -> "LeaseUpdater":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


# ---------------------------
# Data plane
# ---------------------------


class ProgressReader:
    """
    File-like wrapper handed to requests as the request body.

    Has __len__ (requests sets Content-Length from it) and read(), but no
    __iter__, so the body is sent as a plain stream rather than chunked.
    """

    def __init__(self, entry: ArchiveEntry, ctx: Any, on_read: Optional[Callable[[int], None]] = None) -> None:
        self._entry = entry
        self._ctx = ctx
        self._on_read = on_read
        self.bytes_read = 0

    def __len__(self) -> int:
        return int(self._entry.size)

    def read(self, n: int = -1) -> bytes:
        self._ctx.check(f"upload {self._entry.name}")
        chunk = self._entry.read(n)
        if chunk:
            self.bytes_read += len(chunk)
            if self._on_read is not None:
                self._on_read(len(chunk))
        return chunk


class LeaseUploader:
    """requests session bound to one vCenter login, used for lease uploads."""

    def __init__(self, *, cookie: Optional[str], verify: bool = True) -> None:
        self.verify = verify
        s = requests.Session()
        if cookie:
            s.headers["Cookie"] = cookie
        s.headers.setdefault("User-Agent", f"ovaimporter/{__version__}")
        self._s = s

    def close(self) -> None:
        self._s.close()

    def __enter__(self) -> "LeaseUploader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def upload(self, item: LeaseItem, entry: ArchiveEntry, ctx: Any, on_read: Optional[Callable[[int], None]] = None) -> int:
        """Stream `entry` to the item's device URL. Returns bytes sent."""
        ctx.check(f"upload {item.path}")
        body = ProgressReader(entry, ctx, on_read)
        headers = {
            "Content-Type": STREAM_VMDK_CONTENT_TYPE,
            "Content-Length": str(entry.size),
        }
        log.info("Uploading %s (%s) via %s", item.path, human_bytes(entry.size), item.method)
        try:
            r = self._s.request(
                item.method,
                item.url,
                data=body,
                headers=headers,
                verify=self.verify,
                timeout=ctx.remaining(),
            )
        except requests.RequestException as e:
            raise TransactionError(
                msg=f"upload of {item.path} failed: {e}",
                cause=e,
                context={"item": item.path, "url": item.url},
            ) from e

        with r:
            if r.status_code >= 400:
                hint = (r.text or "")[:400].strip()
                raise TransactionError(
                    msg=f"upload of {item.path} failed: HTTP {r.status_code} {hint}".rstrip(),
                    context={"item": item.path, "url": item.url, "status": r.status_code},
                )
        return body.bytes_read
