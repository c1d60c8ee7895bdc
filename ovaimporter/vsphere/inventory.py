# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovaimporter/vsphere/inventory.py

"""
Inventory lookups: datacenter, network, datastore, resource pool, folder, VMs.

Every lookup is a read-only container-view query. Views are destroyed on
every exit path. Everything except the datacenter is scoped to the session's
datacenter, so the datacenter must be resolved first.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from pyVmomi import vim

from ..core.exceptions import (
    AmbiguousDefaultError,
    AmbiguousNameError,
    IncompleteSessionError,
    NotFoundError,
)

log = logging.getLogger("ovaimporter.inventory")

# resolution order used when populating a session
KINDS = ("datacenter", "network", "datastore", "resource_pool", "folder")

_VIM_TYPES: Dict[str, Any] = {
    "datacenter": vim.Datacenter,
    "network": vim.Network,
    "datastore": vim.Datastore,
    "resource_pool": vim.ResourcePool,
    "folder": vim.Folder,
}

DEFAULT_RESOURCE_POOL = "Resources"


# ---------------------------
# Container views
# ---------------------------


def _content(session: Any) -> Any:
    return session.si.RetrieveContent()


def _list_objects(session: Any, container: Any, vim_type: Any) -> List[Any]:
    content = _content(session)
    view = content.viewManager.CreateContainerView(container, [vim_type], True)
    try:
        return list(view.view)
    finally:
        try:
            view.Destroy()
        except Exception as e:
            log.debug("Container view destroy failed: %s", e)


def inventory_path(obj: Any) -> str:
    """
    Slash-joined names from just below the root folder down to `obj`,
    e.g. "DC0/vm/my/folder".
    """
    names: List[str] = []
    cur = obj
    while cur is not None:
        parent = getattr(cur, "parent", None)
        if parent is None:
            # the root folder itself has no parent and is not part of the path
            break
        names.append(str(cur.name))
        cur = parent
    return "/".join(reversed(names))


def _matches(obj: Any, name: str) -> bool:
    if "/" not in name:
        return str(getattr(obj, "name", "")) == name
    path = inventory_path(obj)
    return path == name or path.endswith("/" + name)


# ---------------------------
# Resolution
# ---------------------------


def _scope(session: Any, kind: str) -> Any:
    if kind == "datacenter":
        return _content(session).rootFolder
    if session.datacenter is None:
        raise IncompleteSessionError(
            msg=f"datacenter must be resolved before {kind}",
            context={"kind": kind},
        )
    return session.datacenter


def _default(session: Any, kind: str, candidates: List[Any]) -> Any:
    if kind == "folder":
        return session.datacenter.vmFolder
    if kind == "resource_pool":
        candidates = [rp for rp in candidates if str(getattr(rp, "name", "")) == DEFAULT_RESOURCE_POOL]
    if len(candidates) != 1:
        raise AmbiguousDefaultError(
            msg=f"no unambiguous default {kind}: {len(candidates)} candidates, specify one",
            context={"kind": kind, "candidates": len(candidates)},
        )
    return candidates[0]


def resolve(session: Any, kind: str, name: Optional[str] = None) -> Any:
    """
    Return the managed object of `kind` called `name`, or the environment's
    single default when `name` is blank.
    """
    if kind not in _VIM_TYPES:
        raise ValueError(f"unknown inventory kind: {kind!r}")

    session.ctx.check(f"resolve {kind}")
    wanted = (name or "").strip().strip("/")
    scope = _scope(session, kind)

    # folder default needs no query
    if not wanted and kind == "folder":
        return _default(session, kind, [])

    candidates = _list_objects(session, scope, _VIM_TYPES[kind])
    if not wanted:
        obj = _default(session, kind, candidates)
        log.debug("Default %s: %s", kind, getattr(obj, "name", obj))
        return obj

    hits = [o for o in candidates if _matches(o, wanted)]
    if not hits:
        raise NotFoundError(msg=f"{kind} '{wanted}' not found", context={"kind": kind, "name": wanted})
    if len(hits) > 1:
        raise AmbiguousNameError(
            msg=f"{kind} '{wanted}' matches {len(hits)} objects, use a full inventory path",
            context={"kind": kind, "name": wanted, "paths": sorted(inventory_path(h) for h in hits)},
        )
    return hits[0]


def resolve_session(session: Any, names: Optional[Mapping[str, str]] = None) -> Any:
    """Populate all five inventory references on `session`, datacenter first."""
    names = dict(names or {})
    for kind in KINDS:
        try:
            obj = resolve(session, kind, names.get(kind))
        except (NotFoundError, AmbiguousDefaultError, AmbiguousNameError, IncompleteSessionError) as e:
            raise e.wrapped(f"unable to resolve {kind}") from e
        setattr(session, kind, obj)
        log.info("Using %s: %s", kind.replace("_", " "), inventory_path(obj) or getattr(obj, "name", obj))
    return session


def find_vm(session: Any, name: str) -> Optional[Any]:
    """Virtual machine (or template) called exactly `name` in the session's datacenter."""
    session.ctx.check(f"find vm {name}")
    if session.datacenter is None:
        raise IncompleteSessionError(msg=f"datacenter must be resolved before looking up vm '{name}'", context={"kind": "datacenter"})
    for vm_obj in _list_objects(session, session.datacenter, vim.VirtualMachine):
        if str(getattr(vm_obj, "name", "")) == name:
            return vm_obj
    return None
