# SPDX-License-Identifier: LGPL-3.0-or-later
#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# ovaimporter/__main__.py
from __future__ import annotations

import logging
import sys
import traceback
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import Any, Dict, Mapping, Optional, Sequence

from .cli.args import parse_args_with_config
from .cli.response import build_responses, print_summary, write_response
from .config.config_loader import ImporterConfig
from .core.context import DeployContext
from .core.exceptions import BatchDeployError, Fatal, OvaImporterError, format_exception_for_cli
from .vsphere.batch import dedup_locations, deploy_ova_templates
from .vsphere.errors import ExitCode, classify_exit_code
from .vsphere.session import connect


def _print_stderr(msg: str) -> None:
    print(msg, file=sys.stderr)


def _deploy(cfg: ImporterConfig, ctx: DeployContext) -> Dict[str, Any]:
    with connect(cfg.url, cfg.user, cfg.password, insecure=cfg.insecure, timeout_s=cfg.timeout_s, ctx=ctx) as session:
        session.resolve_inventory(cfg.inventory_names())
        return deploy_ova_templates(session, *cfg.ova, options=cfg.deploy)


def _wait(fut: "Future[Dict[str, Any]]", ctx: DeployContext, logger: logging.Logger) -> Dict[str, Any]:
    """
    Wait for the deployment while staying responsive to Ctrl+C: an interrupt
    cancels the context and the workers unwind at their next check.
    """
    while True:
        try:
            return fut.result(timeout=0.25)
        except FuturesTimeout:
            continue
        except KeyboardInterrupt:
            if not ctx.cancelled:
                logger.warning("Interrupted by user (Ctrl+C), cancelling deployments...")
            ctx.cancel()


def run(argv: Optional[Sequence[str]] = None, environ: Optional[Mapping[str, str]] = None) -> int:
    # Phase 1: parse (Fatal can happen here)
    try:
        args, _conf, logger = parse_args_with_config(argv, environ=environ)
    except Fatal as e:
        _print_stderr(f"💥 ERROR    {e}")
        return e.code
    except KeyboardInterrupt:
        _print_stderr("Interrupted by user (Ctrl+C).")
        return int(ExitCode.INTERRUPTED)

    cfg = ImporterConfig.from_namespace(args)
    ctx = DeployContext(cfg.timeout_s)
    locations = dedup_locations(cfg.ova)

    # Phase 2: connect, resolve, deploy
    results: Dict[str, Any] = {}
    error: Optional[BaseException] = None
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="ovaimporter") as runner:
        fut = runner.submit(_deploy, cfg, ctx)
        try:
            results = _wait(fut, ctx, logger)
        except BatchDeployError as e:
            results, error = e.results, e
        except OvaImporterError as e:
            error = e
        except Exception as e:
            # unexpected exceptions should not fail silently
            logger.error("💥 UNHANDLED %s: %s", type(e).__name__, e)
            logger.debug(traceback.format_exc())
            error = e

    # Phase 3: report
    responses = build_responses(locations, results, error)
    try:
        write_response(responses, cfg.response_dir, logger)
    except OSError as e:
        logger.error("Could not create response file: %s", e)
        return int(ExitCode.LOCAL_IO)
    print_summary(responses)

    if error is None:
        return int(ExitCode.OK)
    logger.error(format_exception_for_cli(error, verbose=cfg.verbose))
    return int(classify_exit_code(error))


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    main()
