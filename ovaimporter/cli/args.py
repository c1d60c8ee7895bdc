# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovaimporter/cli/args.py
from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import yaml

from ..config.config_loader import DEFAULT_CONFIG_PATH, DEFAULT_TIMEOUT_MINUTES, Config
from ..core.logger import Log, c
from ..vsphere.import_spec import DeployOptions


def _add_global_config_logging(p: argparse.ArgumentParser) -> None:
    # ------------------------------------------------------------------
    # Global config/logging (two-phase parse relies on these)
    # ------------------------------------------------------------------
    from .. import __version__

    p.add_argument(
        "--config",
        default=None,
        help=f"YAML config file (default: {DEFAULT_CONFIG_PATH} when present).",
    )
    p.add_argument("--dump-config", action="store_true", help="Print merged config (file + env) and exit.")
    p.add_argument("--version", action="version", version=__version__)
    p.add_argument("-v", "--verbose", action="count", default=0, help="Verbosity: -vv debug, -vvv trace")
    p.add_argument("-q", "--quiet", action="count", default=0, help="Less output: -q warnings, -qq errors")
    p.add_argument("--log-file", dest="log_file", default=None, help="Write logs to file.")
    p.add_argument("--json-logs", dest="json_logs", action="store_true", help="Emit NDJSON logs on stderr.")


def _add_vsphere_connection(p: argparse.ArgumentParser) -> None:
    # ------------------------------------------------------------------
    # vCenter connection
    # ------------------------------------------------------------------
    p.add_argument("--url", default=None, help="vCenter URL or host (https:// added when missing).")
    p.add_argument("--user", default=None, help="vCenter user.")
    p.add_argument("--password", default=None, help="vCenter password (prefer OVAIMPORTER_PASSWORD).")
    p.add_argument(
        "-k",
        "--insecure",
        dest="insecure",
        action="store_true",
        help="Skip TLS certificate verification (self-signed vCenters).",
    )
    p.add_argument(
        "--timeout",
        dest="timeout_minutes",
        type=int,
        default=DEFAULT_TIMEOUT_MINUTES,
        help="Overall deadline in minutes (0 = none).",
    )


def _add_inventory(p: argparse.ArgumentParser) -> None:
    # ------------------------------------------------------------------
    # Target inventory (blank = the single default)
    # ------------------------------------------------------------------
    p.add_argument("--datacenter", default="", help="Datacenter name or path.")
    p.add_argument("--network", default="", help="Network the appliance NIC is mapped to.")
    p.add_argument("--datastore", default="", help="Datastore for the disks.")
    p.add_argument("--resource-pool", dest="resource_pool", default="", help="Resource pool (default: Resources).")
    p.add_argument("--folder", default="", help="VM folder (default: datacenter vm folder).")


def _add_ova_inputs(p: argparse.ArgumentParser) -> None:
    # ------------------------------------------------------------------
    # Inputs / outputs
    # ------------------------------------------------------------------
    p.add_argument(
        "--ova",
        nargs="+",
        default=None,
        help="OVA path(s) or http(s) URL(s); comma-separated lists accepted.",
    )
    p.add_argument(
        "--dir",
        dest="response_dir",
        default="./",
        help="Directory to write response.json to.",
    )


def _add_import_knobs(p: argparse.ArgumentParser) -> None:
    # ------------------------------------------------------------------
    # Import spec parameters
    # ------------------------------------------------------------------
    d = DeployOptions()
    p.add_argument("--disk-provisioning", dest="disk_provisioning", default=d.disk_provisioning, help="thin, thick, eagerZeroedThick, ...")
    p.add_argument("--ip-allocation-policy", dest="ip_allocation_policy", default=d.ip_allocation_policy)
    p.add_argument("--ip-protocol", dest="ip_protocol", default=d.ip_protocol)
    p.add_argument("--locale", default=d.locale)
    p.add_argument("--deployment-option", dest="deployment_option", default=d.deployment_option)
    p.add_argument(
        "--network-placeholder",
        dest="network_placeholder",
        default=d.network_placeholder,
        help="Name of the placeholder network mapping patched from the descriptor.",
    )
    p.add_argument("--remove-nics", dest="remove_nics", action="store_true", help="Strip network adapters before templating.")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ovaimporter",
        description=c("ovaimporter: deploy OVA appliances into vSphere as templates", "green", ["bold"]),
        epilog="Config precedence: CLI flags > OVAIMPORTER_* env > YAML file > defaults.",
    )
    _add_global_config_logging(p)
    _add_vsphere_connection(p)
    _add_inventory(p)
    _add_ova_inputs(p)
    _add_import_knobs(p)
    return p


def _build_preparser() -> argparse.ArgumentParser:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", default=None)
    pre.add_argument("-v", "--verbose", action="count", default=0)
    pre.add_argument("-q", "--quiet", action="count", default=0)
    pre.add_argument("--log-file", dest="log_file", default=None)
    pre.add_argument("--json-logs", dest="json_logs", action="store_true")
    pre.add_argument("--dump-config", action="store_true")
    return pre


def _load_merged_config(logger: logging.Logger, cfg: Optional[str], environ: Optional[Mapping[str, str]]) -> Dict[str, Any]:
    paths = Config.expand_configs(logger, [cfg]) if cfg else Config.default_config_paths()
    conf = Config.load_many(logger, paths)
    conf.update(Config.from_env(environ))
    return conf


def validate_args(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    missing = [f"--{n}" for n in ("url", "user", "password") if not getattr(args, n, None)]
    if not args.ova:
        missing.append("--ova")
    if missing:
        parser.error(f"missing required settings: {', '.join(missing)} (flags, config file or OVAIMPORTER_* env)")
    if args.timeout_minutes < 0:
        parser.error("--timeout must be >= 0")


def parse_args_with_config(
    argv: Optional[Sequence[str]] = None,
    logger: Optional[logging.Logger] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Tuple[argparse.Namespace, Dict[str, Any], logging.Logger]:
    """
    Flow:
      Phase 0: parse ONLY global flags needed to locate config/logging
      Phase 1: load YAML config, overlay OVAIMPORTER_* env
      Phase 2: apply merged config as defaults onto the parser
      Phase 3: full parse to get final args
      Phase 4: validate
    """
    if argv is None:
        argv = sys.argv[1:]
    argv = list(argv)

    parser = build_parser()

    pre = _build_preparser()
    args0, _rest = pre.parse_known_args(argv)

    if logger is None:
        logger = Log.setup(
            args0.verbose,
            args0.log_file,
            quiet=args0.quiet,
            json_logs=args0.json_logs,
        )

    conf = _load_merged_config(logger, args0.config, environ)

    if args0.dump_config:
        safe = {k: ("***REDACTED***" if k == "password" else v) for k, v in conf.items()}
        print(yaml.safe_dump(safe, default_flow_style=False, sort_keys=True), end="")
        raise SystemExit(0)

    # Apply config as defaults so CLI can override.
    Config.apply_as_defaults(logger, parser, conf)

    args = parser.parse_args(argv)
    validate_args(parser, args)
    return args, conf, logger
