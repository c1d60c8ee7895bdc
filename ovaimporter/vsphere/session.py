# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovaimporter/vsphere/session.py
"""
vSphere session: connection handle plus the resolved target inventory.
"""
from __future__ import annotations

import logging
import socket
import ssl
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlparse

import urllib3
from pyVim.connect import Disconnect, SmartConnect

from ..core.context import DeployContext
from ..core.exceptions import IncompleteSessionError, VsphereConnectError
from . import inventory

log = logging.getLogger("ovaimporter.session")


def normalize_url(url: str) -> str:
    """Add https:// when missing; the SDK path is implied by SmartConnect."""
    u = (url or "").strip()
    if not u:
        return u
    if "://" not in u:
        u = "https://" + u
    return u


def _ssl_context(insecure: bool) -> ssl.SSLContext:
    """
    SSL context for the SOAP connection.

    With insecure=True certificate verification is disabled; only use that
    against vCenters with self-signed certificates on trusted networks.
    """
    if insecure:
        log.warning("TLS certificate verification is DISABLED (insecure=True)")
        ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        return ctx
    return ssl.create_default_context()


@dataclass
class Session:
    si: Any
    host: str
    insecure: bool = False
    ctx: DeployContext = field(default_factory=DeployContext.background)

    datacenter: Any = None
    datastore: Any = None
    network: Any = None
    resource_pool: Any = None
    folder: Any = None

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.disconnect()
        return False

    def disconnect(self) -> None:
        if self.si is None:
            return
        try:
            Disconnect(self.si)
        except Exception as e:
            log.error("Error during disconnect: %s", e)
        finally:
            self.si = None

    @property
    def content(self) -> Any:
        return self.si.RetrieveContent()

    def soap_cookie(self) -> Optional[str]:
        """
        `vmware_soap_session="..."` pair used to authenticate lease uploads.
        The stub keeps the full Set-Cookie value; only the first pair is sent.
        """
        stub = getattr(self.si, "_stub", None)
        cookie = getattr(stub, "cookie", None)
        if not cookie:
            return None
        return str(cookie).split(";", 1)[0].strip() or None

    def require_inventory(self) -> None:
        missing = [k for k in inventory.KINDS if getattr(self, k) is None]
        if missing:
            raise IncompleteSessionError(
                msg=f"session inventory incomplete, unresolved: {', '.join(missing)}",
                context={"kind": missing[0], "missing": missing},
            )

    def resolve_inventory(self, names: Optional[Mapping[str, str]] = None, **kw: str) -> "Session":
        merged: Dict[str, str] = dict(names or {})
        merged.update(kw)
        return inventory.resolve_session(self, merged)

    def get_datacenter_or_default(self, name: str = "") -> Any:
        return inventory.resolve(self, "datacenter", name)

    def get_network_or_default(self, name: str = "") -> Any:
        return inventory.resolve(self, "network", name)

    def get_datastore_or_default(self, name: str = "") -> Any:
        return inventory.resolve(self, "datastore", name)

    def get_resource_pool_or_default(self, name: str = "") -> Any:
        return inventory.resolve(self, "resource_pool", name)

    def get_folder_or_default(self, name: str = "") -> Any:
        return inventory.resolve(self, "folder", name)

    def get_vm(self, name: str) -> Any:
        return inventory.find_vm(self, name)


def connect(
    url: str,
    user: str,
    password: str,
    *,
    insecure: bool = False,
    timeout_s: Optional[float] = None,
    ctx: Optional[DeployContext] = None,
) -> Session:
    """
    Log in to vCenter and return a Session with no inventory resolved yet.

    `timeout_s` bounds every socket operation of the SOAP connection.
    """
    ctx = ctx or DeployContext.background()
    ctx.check("connect")

    full = normalize_url(url)
    parsed = urlparse(full)
    host = parsed.hostname or ""
    if not host:
        raise VsphereConnectError(msg=f"invalid vCenter url: {url!r}", context={"url": url})
    port = parsed.port or 443

    if insecure:
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    sock_timeout = timeout_s if timeout_s is not None else ctx.remaining()
    old_timeout = socket.getdefaulttimeout()
    socket.setdefaulttimeout(sock_timeout)
    try:
        si = SmartConnect(
            host=host,
            user=user,
            pwd=password,
            port=port,
            sslContext=_ssl_context(insecure),
        )
    except Exception as e:
        raise VsphereConnectError(
            msg=f"unable to connect to vSphere at {host}:{port}: {e}",
            cause=e,
            context={"host": host, "user": user},
        ) from e
    finally:
        socket.setdefaulttimeout(old_timeout)

    log.info("Connected to vSphere: %s:%s", host, port)
    return Session(si=si, host=host, insecure=insecure, ctx=ctx)
