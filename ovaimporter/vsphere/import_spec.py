# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovaimporter/vsphere/import_spec.py
"""
OVF descriptor handling and import-spec construction.

    descriptor = read "*.ovf" from the archive
    ParseDescriptor(descriptor)          -> declared networks (best effort)
    patch first placeholder mapping name -> NetworkPatch
    CreateImportSpec(descriptor, rp, ds, params)

Only the network-name patch is allowed to fail softly; its outcome is returned
as a NetworkPatch and logged.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from pyVmomi import vim

from ..core.exceptions import ImportSpecError, SourceError
from ..core.logger import Log
from .archive import read_entry

log = logging.getLogger("ovaimporter.import_spec")

DESCRIPTOR_PATTERN = "*.ovf"


@dataclass(frozen=True)
class DeployOptions:
    disk_provisioning: str = "thin"
    ip_allocation_policy: str = "dhcpPolicy"
    ip_protocol: str = "IPv4"
    locale: str = "US"
    deployment_option: str = ""
    network_placeholder: str = "nic0"
    remove_nics: bool = False


@dataclass(frozen=True)
class NetworkPatch:
    applied: bool
    name: Optional[str] = None
    reason: str = ""


def fault_message(fault: Any) -> str:
    """Best human-readable text of a vmodl fault (or any exception)."""
    for attr in ("localizedMessage", "msg"):
        v = getattr(fault, attr, None)
        if v:
            return str(v)
    return str(fault) or type(fault).__name__


def build_import_params(session: Any, template_name: str, options: Optional[DeployOptions] = None) -> Any:
    """CreateImportSpecParams with one placeholder mapping bound to the session's network."""
    options = options or DeployOptions()
    params = vim.OvfManager.CreateImportSpecParams(
        entityName=template_name,
        diskProvisioning=options.disk_provisioning,
        ipAllocationPolicy=options.ip_allocation_policy,
        ipProtocol=options.ip_protocol,
        locale=options.locale,
        networkMapping=[
            vim.OvfManager.NetworkMapping(name=options.network_placeholder, network=session.network),
        ],
    )
    if options.deployment_option:
        params.deploymentOption = options.deployment_option
    return params


def parse_descriptor_networks(ovf_manager: Any, descriptor: str) -> List[str]:
    """Logical network names declared by the descriptor. Raises on parse failure."""
    result = ovf_manager.ParseDescriptor(descriptor, vim.OvfManager.ParseDescriptorParams())
    errors = list(getattr(result, "error", None) or [])
    if errors:
        raise ImportSpecError(msg=fault_message(errors[0]), context={"detail": fault_message(errors[0])})
    return [str(n.name) for n in (getattr(result, "network", None) or []) if getattr(n, "name", None)]


def patch_network_mapping(ovf_manager: Any, descriptor: str, params: Any) -> NetworkPatch:
    """
    Rename the first placeholder network mapping to the first network the
    descriptor declares. Never raises.
    """
    try:
        networks = parse_descriptor_networks(ovf_manager, descriptor)
    except Exception as e:
        return NetworkPatch(applied=False, reason=f"descriptor parse failed: {fault_message(e)}")

    if not networks:
        return NetworkPatch(applied=False, reason="descriptor declares no networks")
    if not params.networkMapping:
        return NetworkPatch(applied=False, name=networks[0], reason="no placeholder network mapping")

    params.networkMapping[0].name = networks[0]
    return NetworkPatch(applied=True, name=networks[0])


def read_descriptor(location: str, *, verify: bool = True, ctx: Any = None) -> str:
    timeout = ctx.remaining() if ctx is not None else None
    try:
        raw = read_entry(location, DESCRIPTOR_PATTERN, verify=verify, timeout=timeout, ctx=ctx)
    except SourceError as e:
        raise e.wrapped(f"unable to read OVF file from {location}") from e
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ImportSpecError(
            msg=f"OVF descriptor in {location} is not valid UTF-8",
            cause=e,
            context={"location": location, "detail": str(e)},
        ) from e


def build_import_spec(session: Any, location: str, resource_pool: Any, datastore: Any, params: Any) -> Any:
    """Return the CreateImportSpecResult for the OVA at `location`."""
    ctx = session.ctx
    descriptor = read_descriptor(location, verify=not session.insecure, ctx=ctx)

    ovf_manager = session.si.RetrieveContent().ovfManager

    ctx.check("parse descriptor")
    patch = patch_network_mapping(ovf_manager, descriptor, params)
    if patch.applied:
        log.info("Network mapping: %s -> session network", patch.name, extra={"ctx": {"ova": location}})
    else:
        Log.warn(log, f"Network mapping left as placeholder: {patch.reason}", ova=location)

    ctx.check("create import spec")
    try:
        result = ovf_manager.CreateImportSpec(descriptor, resource_pool, datastore, params)
    except Exception as e:
        detail = fault_message(e)
        raise ImportSpecError(
            msg=f"unable to create import spec for {location}: {detail}",
            cause=e,
            context={"location": location, "detail": detail},
        ) from e

    for w in getattr(result, "warning", None) or []:
        log.warning("Import spec warning: %s", fault_message(w), extra={"ctx": {"ova": location}})
    return result


def check_import_spec_result(result: Any, location: str) -> None:
    """A result carrying structured errors is fatal with the first error's message."""
    errors = list(getattr(result, "error", None) or [])
    if errors:
        detail = fault_message(errors[0])
        raise ImportSpecError(
            msg=f"import spec for {location} rejected: {detail}",
            context={"location": location, "detail": detail, "errors": len(errors)},
        )


def strip_vapp_config(result: Any) -> bool:
    """
    Remove the vApp ovfSection from a VM import spec. Returns True when
    something was removed.
    """
    spec = getattr(result, "importSpec", None)
    if not isinstance(spec, vim.VirtualMachineImportSpec):
        return False
    config = spec.configSpec
    vapp = getattr(config, "vAppConfig", None) if config is not None else None
    if vapp is None or not getattr(vapp, "ovfSection", None):
        return False
    vapp.ovfSection = []
    return True
