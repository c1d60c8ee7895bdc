# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovaimporter/config/config_loader.py
"""
Configuration sources for the importer.

Precedence, lowest to highest:
  defaults < YAML file(s) < OVAIMPORTER_* environment < CLI flags

YAML and environment values are merged into one dict and applied as argparse
defaults, so anything given on the command line still wins. The final
argparse namespace is frozen into an ImporterConfig that the engine receives.
"""
from __future__ import annotations

import argparse
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import yaml

from ..core.exceptions import Fatal
from ..vsphere.import_spec import DeployOptions

ENV_PREFIX = "OVAIMPORTER_"
DEFAULT_CONFIG_PATH = "~/.ovaimporter.yaml"
DEFAULT_TIMEOUT_MINUTES = 5

# Keys accepted in YAML/env besides the canonical argparse dests.
_ALIASES: Dict[str, str] = {
    "dir": "response_dir",
    "timeout": "timeout_minutes",
    "pool": "resource_pool",
    "resourcepool": "resource_pool",
    "pass": "password",
    "username": "user",
    "no_verify": "insecure",
}

_BOOL_KEYS = {"insecure", "json_logs", "remove_nics"}
_INT_KEYS = {"timeout_minutes", "verbose"}
_LIST_KEYS = {"ova"}

_TRUE = {"1", "true", "yes", "on", "y"}
_FALSE = {"0", "false", "no", "off", "n", ""}


def _norm_key(k: str) -> str:
    key = str(k).strip().lower().replace("-", "_")
    return _ALIASES.get(key, key)


def _to_bool(key: str, v: Any) -> bool:
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    raise Fatal(code=2, msg=f"invalid boolean for {key!r}: {v!r}")


def _to_int(key: str, v: Any) -> int:
    try:
        return int(str(v).strip())
    except ValueError as e:
        raise Fatal(code=2, msg=f"invalid integer for {key!r}: {v!r}", cause=e) from e


def _to_list(v: Any) -> List[str]:
    if v is None:
        return []
    items = v if isinstance(v, (list, tuple)) else [v]
    return [s for x in items for s in (p.strip() for p in str(x).split(",")) if s]


def _coerce(key: str, v: Any) -> Any:
    if key in _BOOL_KEYS:
        return _to_bool(key, v)
    if key in _INT_KEYS:
        return _to_int(key, v)
    if key in _LIST_KEYS:
        return _to_list(v)
    return v


class Config:
    @staticmethod
    def normalize(raw: Mapping[str, Any]) -> Dict[str, Any]:
        """Canonical keys and coerced values; unknown keys are kept as-is."""
        out: Dict[str, Any] = {}
        for k, v in raw.items():
            key = _norm_key(k)
            # nested "deploy:" section flattens onto the top level
            if key == "deploy" and isinstance(v, Mapping):
                out.update(Config.normalize(v))
                continue
            out[key] = _coerce(key, v)
        return out

    @staticmethod
    def expand_configs(logger: logging.Logger, paths: Sequence[str]) -> List[Path]:
        out: List[Path] = []
        for p in paths:
            fp = Path(p).expanduser()
            if not fp.is_file():
                raise Fatal(code=2, msg=f"config file not found: {fp}")
            out.append(fp)
        logger.debug("Config files: %s", [str(p) for p in out])
        return out

    @staticmethod
    def default_config_paths() -> List[Path]:
        fp = Path(DEFAULT_CONFIG_PATH).expanduser()
        return [fp] if fp.is_file() else []

    @staticmethod
    def load_file(logger: logging.Logger, path: Path) -> Dict[str, Any]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise Fatal(code=2, msg=f"unable to read config {path}: {e}", cause=e) from e
        except yaml.YAMLError as e:
            raise Fatal(code=2, msg=f"invalid YAML in {path}: {e}", cause=e) from e

        if data is None:
            return {}
        if not isinstance(data, Mapping):
            raise Fatal(code=2, msg=f"config {path} must be a mapping, got {type(data).__name__}")
        logger.info("Using config file: %s", path)
        return Config.normalize(data)

    @staticmethod
    def load_many(logger: logging.Logger, paths: Iterable[Path]) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        for p in paths:
            merged.update(Config.load_file(logger, p))
        return merged

    @staticmethod
    def from_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        env = os.environ if environ is None else environ
        raw = {k[len(ENV_PREFIX):]: v for k, v in env.items() if k.startswith(ENV_PREFIX) and len(k) > len(ENV_PREFIX)}
        return Config.normalize(raw)

    @staticmethod
    def apply_as_defaults(logger: logging.Logger, parser: argparse.ArgumentParser, conf: Mapping[str, Any]) -> None:
        dests = {a.dest for a in parser._actions}
        known = {k: v for k, v in conf.items() if k in dests}
        unknown = sorted(k for k in conf if k not in dests)
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", ", ".join(unknown))
        if known:
            parser.set_defaults(**known)


@dataclass(frozen=True)
class ImporterConfig:
    url: str = ""
    user: str = ""
    password: str = field(default="", repr=False)
    insecure: bool = False
    timeout_minutes: int = DEFAULT_TIMEOUT_MINUTES

    ova: Tuple[str, ...] = ()

    datacenter: str = ""
    datastore: str = ""
    network: str = ""
    resource_pool: str = ""
    folder: str = ""

    response_dir: str = "./"

    verbose: int = 0
    log_file: Optional[str] = None
    json_logs: bool = False

    deploy: DeployOptions = field(default_factory=DeployOptions)

    @property
    def timeout_s(self) -> Optional[float]:
        return float(self.timeout_minutes) * 60.0 if self.timeout_minutes > 0 else None

    def inventory_names(self) -> Dict[str, str]:
        return {
            "datacenter": self.datacenter,
            "network": self.network,
            "datastore": self.datastore,
            "resource_pool": self.resource_pool,
            "folder": self.folder,
        }

    @classmethod
    def from_namespace(cls, args: argparse.Namespace) -> "ImporterConfig":
        a = vars(args)
        defaults = DeployOptions()
        deploy = DeployOptions(
            disk_provisioning=a.get("disk_provisioning") or defaults.disk_provisioning,
            ip_allocation_policy=a.get("ip_allocation_policy") or defaults.ip_allocation_policy,
            ip_protocol=a.get("ip_protocol") or defaults.ip_protocol,
            locale=a.get("locale") or defaults.locale,
            deployment_option=a.get("deployment_option") or defaults.deployment_option,
            network_placeholder=a.get("network_placeholder") or defaults.network_placeholder,
            remove_nics=bool(a.get("remove_nics", defaults.remove_nics)),
        )
        return cls(
            url=a.get("url") or "",
            user=a.get("user") or "",
            password=a.get("password") or "",
            insecure=bool(a.get("insecure", False)),
            timeout_minutes=int(a.get("timeout_minutes") or 0),
            ova=tuple(_to_list(a.get("ova"))),
            datacenter=a.get("datacenter") or "",
            datastore=a.get("datastore") or "",
            network=a.get("network") or "",
            resource_pool=a.get("resource_pool") or "",
            folder=a.get("folder") or "",
            response_dir=a.get("response_dir") or "./",
            verbose=int(a.get("verbose") or 0),
            log_file=a.get("log_file"),
            json_logs=bool(a.get("json_logs", False)),
            deploy=deploy,
        )
