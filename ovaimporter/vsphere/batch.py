# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovaimporter/vsphere/batch.py
"""
Deploy several OVAs concurrently against one session.

Locations are sorted, de-duplicated and blank ones dropped. Every remaining
location gets its own worker; a failure does not cancel the others. When
all workers are done the first failure (in completion order) is raised as
BatchDeployError carrying whatever succeeded.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, Iterable, List, Optional

from ..core.exceptions import BatchDeployError, OvaImporterError
from ..core.logger import Log
from .deploy import DeployInfo, DeployOptions, deploy_ova_template

log = logging.getLogger("ovaimporter.batch")


def dedup_locations(locations: Iterable[str]) -> List[str]:
    """Sorted, exact-string unique, non-blank locations."""
    return sorted({loc for loc in locations if loc and loc.strip()})


def deploy_ova_templates(
    session: Any,
    *locations: str,
    options: Optional[DeployOptions] = None,
    max_workers: Optional[int] = None,
) -> Dict[str, DeployInfo]:
    todo = dedup_locations(locations)
    if not todo:
        return {}

    results: Dict[str, DeployInfo] = {}
    lock = threading.Lock()
    errors: Dict[str, BaseException] = {}
    first_error: Optional[BaseException] = None

    def _one(location: str) -> DeployInfo:
        info = deploy_ova_template(session, location, options)
        with lock:
            results[location] = info
        return info

    workers = max_workers or len(todo)
    log.info("Deploying %d OVA(s) with %d worker(s)", len(todo), workers)

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="deploy") as ex:
        futs = {ex.submit(_one, loc): loc for loc in todo}
        for fut in as_completed(futs):
            loc = futs[fut]
            try:
                info = fut.result()
            except Exception as e:
                Log.fail(log, f"Deployment of {loc} failed: {e}", location=loc)
                if isinstance(e, OvaImporterError):
                    e.with_context(location=loc)
                errors[loc] = e
                if first_error is None:
                    first_error = e
                continue
            log.debug("Deployment of %s finished (already_exists=%s)", loc, info.already_exists)

    if first_error is not None:
        raise BatchDeployError(first_error, dict(results), errors)
    return results
