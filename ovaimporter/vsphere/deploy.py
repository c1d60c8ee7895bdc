# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovaimporter/vsphere/deploy.py
"""
Single OVA -> template deployment.

    Start
      -> ExistsCheck    (template already there: done, already_exists=True)
      -> SpecBuilt      (descriptor parsed, import spec created, vApp section stripped)
      -> LeaseOpened    (ImportVApp, lease ready, keepalive running)
      -> Uploading      (every lease item once, sequentially)
      -> LeaseCompleted
      -> MarkedTemplate

Any step may fail. Nothing created on vCenter is rolled back: a failed
upload aborts the lease, a failed MarkAsTemplate leaves a plain VM behind.
"""
from __future__ import annotations

import logging
import ntpath
import posixpath
from dataclasses import dataclass, field
from typing import Any, List, Optional
from urllib.parse import unquote, urlparse

from ..core.exceptions import (
    DeployCancelledError,
    DeployTimeoutError,
    FinalizationError,
    OvaImporterError,
    SourceError,
    SourceOpenError,
    TransactionError,
)
from ..core.logger import Log
from .archive import is_remote, open_entry
from .datastore import remove_nics
from .import_spec import (
    DeployOptions,
    build_import_params,
    build_import_spec,
    check_import_spec_result,
    fault_message,
    strip_vapp_config,
)
from .inventory import find_vm
from .lease import LeaseItem, LeaseUpdater, LeaseUploader, abort_lease, complete_lease, lease_items, wait_for_lease

log = logging.getLogger("ovaimporter.deploy")

__all__ = ["DeployInfo", "DeployOptions", "deploy_ova_template", "template_name_from_location"]

_CONTEXT_ERRORS = (DeployTimeoutError, DeployCancelledError)


@dataclass(frozen=True)
class DeployInfo:
    template_name: str
    vm: Any = field(default=None, compare=False, repr=False)
    already_exists: bool = False


def template_name_from_location(location: str) -> str:
    """
    Base name of the archive with one trailing ".ova" removed. The suffix is
    matched case-insensitively, so "UPPER.OVA" becomes "UPPER" rather than
    keeping the extension in the template name.

        /srv/a.b.ova                    -> a.b
        /srv/UPPER.OVA                  -> UPPER
        https://host/x.ova?sig=1        -> x
        noext                           -> noext
    """
    loc = (location or "").strip()
    if is_remote(loc):
        base = posixpath.basename(unquote(urlparse(loc).path).rstrip("/"))
    else:
        base = ntpath.basename(loc.rstrip("/\\")) if "\\" in loc else posixpath.basename(loc.rstrip("/"))
    if base.lower().endswith(".ova"):
        base = base[: -len(".ova")]
    if not base:
        raise SourceOpenError(msg=f"cannot derive a template name from {location!r}", context={"location": location})
    return base


def _upload_items(session: Any, location: str, items: List[LeaseItem], updater: LeaseUpdater) -> None:
    ctx = session.ctx
    verify = not session.insecure
    with LeaseUploader(cookie=session.soap_cookie(), verify=verify) as uploader:
        for item in items:
            try:
                with open_entry(location, item.path, verify=verify, timeout=ctx.remaining(), ctx=ctx) as entry:
                    sent = uploader.upload(item, entry, ctx, on_read=updater.add)
            except SourceError as e:
                raise TransactionError(
                    msg=f"unable to read {item.path} from {location}: {e.msg}",
                    cause=e,
                    context={"item": item.path, "location": location},
                ) from e
            log.debug("Uploaded %s (%d bytes)", item.path, sent)


def _import(session: Any, location: str, template_name: str, options: DeployOptions, blog: Any) -> Any:
    ctx = session.ctx

    params = build_import_params(session, template_name, options)
    result = build_import_spec(session, location, session.resource_pool, session.datastore, params)
    check_import_spec_result(result, location)
    if strip_vapp_config(result):
        blog.debug("Removed vApp ovfSection from import spec")

    ctx.check("import vapp")
    try:
        lease = session.resource_pool.ImportVApp(result.importSpec, folder=session.folder)
    except Exception as e:
        raise TransactionError(msg=f"ImportVApp failed: {fault_message(e)}", cause=e) from e

    try:
        info = wait_for_lease(lease, ctx)
        items = lease_items(info, list(result.fileItem or []), session.host)
        total = sum(int(i.size or 0) for i in items)
        Log.step(blog, f"Uploading {len(items)} file(s)", bytes=total)
        with LeaseUpdater(lease, total) as updater:
            _upload_items(session, location, items, updater)
    except Exception as e:
        abort_err = abort_lease(lease, e)
        err = e if isinstance(e, OvaImporterError) else TransactionError(msg=f"upload failed: {e}", cause=e)
        if abort_err is not None:
            err.with_context(abort_error=fault_message(abort_err))
        if err is e:
            raise
        raise err from e

    complete_lease(lease, ctx)
    return info.entity


def deploy_ova_template(session: Any, location: str, options: Optional[DeployOptions] = None) -> DeployInfo:
    """
    Import the OVA at `location` as a template named after the archive.
    Idempotent on name: an existing VM/template with that name short-circuits.
    """
    options = options or DeployOptions()
    ctx = session.ctx

    name = template_name_from_location(location)
    blog = Log.bind(log, ova=location, template=name)

    session.require_inventory()

    existing = find_vm(session, name)
    if existing is not None:
        blog.info("Template already exists, skipping import")
        return DeployInfo(template_name=name, vm=existing, already_exists=True)

    Log.step(blog, f"Deploying {name}")
    try:
        vm = _import(session, location, name, options, blog)
    except OvaImporterError as e:
        raise e.wrapped(f"unable to create virtual machine from {name}", template=name) from e

    if options.remove_nics:
        try:
            remove_nics(vm, ctx)
        except _CONTEXT_ERRORS:
            raise
        except Exception as e:
            raise FinalizationError(
                msg=f"unable to remove network adapters from {name}: {fault_message(e)}",
                cause=e,
                context={"template": name},
            ) from e

    ctx.check("mark as template")
    try:
        vm.MarkAsTemplate()
    except Exception as e:
        raise FinalizationError(
            msg=f"unable to mark {name} as template: {fault_message(e)}",
            cause=e,
            context={"template": name},
        ) from e

    Log.ok(blog, f"Template {name} ready")
    return DeployInfo(template_name=name, vm=vm, already_exists=False)
