# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovaimporter/vsphere/datastore.py

"""
Datastore capacity, VM storage size, property reads, task wait, NIC removal.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Sequence, Tuple

from pyVmomi import vim

from ..core.exceptions import NotFoundError, OvaImporterError
from .import_spec import fault_message
from .inventory import find_vm

log = logging.getLogger("ovaimporter.datastore")

GIB = 1 << 30
TASK_POLL_S = 0.5


def datastore_capacity(session: Any) -> Tuple[float, float]:
    """(capacity, free) of the session's datastore in GiB."""
    ds = session.datastore
    if ds is None:
        raise OvaImporterError(msg="no datastore specified in connection session")
    session.ctx.check("datastore summary")
    summary = getattr(ds, "summary", None)
    if summary is None:
        name = getattr(ds, "name", "?")
        raise OvaImporterError(msg=f"datastore '{name}' has no summary", context={"datastore": name})
    return float(summary.capacity) / GIB, float(summary.freeSpace) / GIB


def vm_disks(vm_obj: Any) -> list:
    devices = getattr(getattr(getattr(vm_obj, "config", None), "hardware", None), "device", None) or []
    return [d for d in devices if isinstance(d, vim.vm.device.VirtualDisk)]


def vm_total_storage_size(session: Any, vm_name: str) -> float:
    """Sum of the VM's virtual disk capacities, in GB (capacityInKB / 1e6)."""
    vm_obj = find_vm(session, vm_name)
    if vm_obj is None:
        raise NotFoundError(msg=f"vm '{vm_name}' not found", context={"kind": "vm", "name": vm_name})
    total_kb = sum(int(d.capacityInKB or 0) for d in vm_disks(vm_obj))
    return total_kb / 1e6


def get_vm_properties(vm_obj: Any, props: Sequence[str] = ("name", "summary", "config.hardware.device")) -> Dict[str, Any]:
    """Dotted property paths read off the managed object; missing ones map to None."""
    out: Dict[str, Any] = {}
    for path in props:
        cur = vm_obj
        for part in path.split("."):
            cur = getattr(cur, part, None)
            if cur is None:
                break
        out[path] = cur
    return out


def wait_for_task(task: Any, ctx: Any, *, poll_s: float = TASK_POLL_S) -> Any:
    while True:
        ctx.check("wait for task")
        info = task.info
        if info.state == vim.TaskInfo.State.success:
            return info.result
        if info.state == vim.TaskInfo.State.error:
            detail = fault_message(info.error) if info.error is not None else "unknown error"
            raise OvaImporterError(msg=f"task failed: {detail}", context={"detail": detail})
        ctx.sleep(poll_s, "wait for task")


def remove_nics(vm_obj: Any, ctx: Any) -> int:
    """Remove every ethernet card from the VM. Returns how many were removed."""
    devices = getattr(getattr(getattr(vm_obj, "config", None), "hardware", None), "device", None) or []
    nics = [d for d in devices if isinstance(d, vim.vm.device.VirtualEthernetCard)]
    if not nics:
        return 0

    changes = [
        vim.vm.device.VirtualDeviceSpec(operation=vim.vm.device.VirtualDeviceSpec.Operation.remove, device=nic)
        for nic in nics
    ]
    ctx.check("remove nics")
    task = vm_obj.ReconfigVM_Task(spec=vim.vm.ConfigSpec(deviceChange=changes))
    wait_for_task(task, ctx)
    log.info("Removed %d network adapter(s) from %s", len(nics), getattr(vm_obj, "name", "vm"))
    return len(nics)
