# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovaimporter/cli/response.py
"""
Result reporting: response.json, log line, and a rich summary table on TTYs.

A run with one OVA writes a single object:

    {"name": "web", "alreadyExists": false, "success": true, "errorMsg": ""}

A run with several OVAs writes a list of such objects, each with an extra
"ova" key naming the archive location.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from rich.table import Table

from ..core.exceptions import BatchDeployError, format_exception_for_cli
from ..core.utils import create_console

RESPONSE_FILE_NAME = "response.json"
RESPONSE_DIR_FALLBACK = "./"


@dataclass(frozen=True)
class ImporterResponse:
    name: str = ""
    already_exists: bool = False
    success: bool = False
    error_msg: str = ""
    ova: Optional[str] = None

    @classmethod
    def from_info(cls, info: Any, ova: Optional[str] = None) -> "ImporterResponse":
        return cls(name=info.template_name, already_exists=bool(info.already_exists), success=True, ova=ova)

    @classmethod
    def from_error(cls, err: BaseException, ova: Optional[str] = None) -> "ImporterResponse":
        return cls(name="", already_exists=False, success=False, error_msg=format_exception_for_cli(err), ova=ova)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "alreadyExists": self.already_exists,
            "success": self.success,
            "errorMsg": self.error_msg,
        }
        if self.ova is not None:
            d["ova"] = self.ova
        return d


def build_responses(
    locations: Sequence[str],
    results: Mapping[str, Any],
    error: Optional[BaseException] = None,
) -> List[ImporterResponse]:
    """
    One response per location. Locations without a result report their own
    error when the batch recorded one, otherwise the overall error.
    """
    per_loc: Mapping[str, BaseException] = error.errors if isinstance(error, BatchDeployError) else {}
    tag = len(locations) > 1
    out: List[ImporterResponse] = []
    for loc in locations:
        ova = loc if tag else None
        if loc in results:
            out.append(ImporterResponse.from_info(results[loc], ova))
        else:
            err = per_loc.get(loc) or error
            if err is None:
                err = RuntimeError("not deployed")
            out.append(ImporterResponse.from_error(err, ova))
    if not locations and error is not None:
        out.append(ImporterResponse.from_error(error))
    return out


def _payload(responses: Sequence[ImporterResponse]) -> Any:
    if len(responses) == 1:
        return responses[0].to_dict()
    return [r.to_dict() for r in responses]


def _prepare_dir(response_dir: str, logger: logging.Logger) -> Path:
    d = Path(response_dir or RESPONSE_DIR_FALLBACK).expanduser()
    try:
        d.mkdir(mode=0o755, parents=True, exist_ok=True)
        return d
    except OSError as e:
        logger.warning("Cannot create response dir %s (%s), using %s", d, e, RESPONSE_DIR_FALLBACK)
        return Path(RESPONSE_DIR_FALLBACK)


def write_response(responses: Sequence[ImporterResponse], response_dir: str, logger: logging.Logger) -> Path:
    """Write response.json, falling back to the current directory. Returns the path written."""
    data = json.dumps(_payload(responses), indent=2) + "\n"
    path = _prepare_dir(response_dir, logger) / RESPONSE_FILE_NAME
    try:
        path.write_text(data, encoding="utf-8")
    except OSError as e:
        fallback = Path(RESPONSE_DIR_FALLBACK) / RESPONSE_FILE_NAME
        if os.path.abspath(fallback) == os.path.abspath(path):
            raise
        logger.warning("Cannot write %s (%s), using %s", path, e, fallback)
        fallback.write_text(data, encoding="utf-8")
        path = fallback

    for r in responses:
        ctx = dict(r.to_dict(), responseFile=str(path))
        if r.success:
            logger.info("Deployment finished", extra={"ctx": ctx})
        else:
            logger.error("Deployment failed", extra={"ctx": ctx})
    return path


def print_summary(responses: Sequence[ImporterResponse]) -> None:
    """Rich table of the outcome; no-op when stdout is not a terminal."""
    console = create_console()
    if console is None:
        return
    table = Table(title="OVA deployments")
    table.add_column("OVA / template", style="cyan")
    table.add_column("Result")
    table.add_column("Detail", overflow="fold")
    for r in responses:
        label = r.ova or r.name or "-"
        if r.success:
            result = "[yellow]exists[/yellow]" if r.already_exists else "[green]imported[/green]"
            detail = r.name
        else:
            result = "[red]failed[/red]"
            detail = r.error_msg
        table.add_row(label, result, detail)
    console.print(table)
