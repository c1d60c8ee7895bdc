# SPDX-License-Identifier: LGPL-3.0-or-later
# ovaimporter/core/exceptions.py
from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Dict, Optional


def _safe_int(x: Any, default: int = 1) -> int:
    try:
        return int(x)
    except (TypeError, ValueError):
        return default


def _clamp_exit_code(code: int) -> int:
    # Exit codes are 0..255.
    if code < 0:
        return 1
    if code > 255:
        return 255
    return code


def _one_line(s: str, limit: int = 2000) -> str:
    s = (s or "").strip().replace("\r", " ").replace("\n", " ")
    s = " ".join(s.split())
    return s if len(s) <= limit else (s[: limit - 3] + "...")


_SECRET_KEY_PARTS = (
    "pass",
    "password",
    "passwd",
    "secret",
    "token",
    "cookie",
    "session_id",
    "bearer",
)


def _is_secret_key(k: str) -> bool:
    ks = (k or "").lower()
    return any(p in ks for p in _SECRET_KEY_PARTS)


def _redacted(ctx: Dict[str, Any]) -> Dict[str, Any]:
    return {k: ("***REDACTED***" if _is_secret_key(str(k)) else v) for k, v in ctx.items()}


def _format_context_compact(ctx: Dict[str, Any]) -> str:
    # Stable order, redaction, single-line.
    parts = []
    for k, v in sorted(_redacted(ctx).items()):
        parts.append(f"{k}={v!r}")
    return ", ".join(parts)


@dataclass(eq=False)
class OvaImporterError(Exception):
    """
    Base project error with:
      - stable fields for reporting/JSON
      - readable __str__ (what users see)
      - safe code handling (never crashes on int())
    """
    code: int = 1
    msg: str = "error"
    cause: Optional[BaseException] = None
    context: Optional[Dict[str, Any]] = None

    def __post_init__(self) -> None:
        self.code = _clamp_exit_code(_safe_int(self.code, default=1))
        self.msg = _one_line(self.msg) or self.__class__.__name__
        if self.context is None:
            self.context = {}
        super().__init__(self.msg)
        # Some tooling inspects Exception.args directly.
        self.args = (self.msg,)

    def with_context(self, **ctx: Any) -> "OvaImporterError":
        if self.context is None:
            self.context = {}
        self.context.update(ctx)
        return self

    def wrapped(self, prefix: str, **ctx: Any) -> "OvaImporterError":
        """
        Same error type, message prefixed with the calling operation.

        Chains read outermost first:
          "unable to create virtual machine from web: unable to read OVF file from web.ova: ..."
        """
        merged = dict(self.context or {})
        merged.update(ctx)
        return dataclasses.replace(self, msg=f"{prefix}: {self.msg}", cause=self, context=merged)

    def user_message(self, *, include_context: bool = False, include_cause: bool = False) -> str:
        """
        Human-friendly message for CLI output/logs.
        """
        base = self.msg or self.__class__.__name__
        parts = [base]

        if include_context and self.context:
            parts.append(f"[{_one_line(_format_context_compact(self.context), limit=600)}]")

        if include_cause and self.cause is not None:
            parts.append(f"(cause: {type(self.cause).__name__}: {_one_line(str(self.cause), limit=600)})")

        return " ".join(parts)

    def __str__(self) -> str:
        return self.user_message(include_context=False, include_cause=False)

    def to_dict(self, *, include_cause: bool = False) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "type": self.__class__.__name__,
            "code": self.code,
            "message": self.msg,
            "context": _redacted(self.context or {}),
        }
        if include_cause and self.cause is not None:
            d["cause"] = {"type": type(self.cause).__name__, "message": _one_line(str(self.cause))}
        return d


class Fatal(OvaImporterError):
    """
    User-facing fatal error (exit code should be honored by top-level main()).
    """
    pass


@dataclass(eq=False)
class VsphereConnectError(OvaImporterError):
    """Connecting or logging in to vCenter failed."""
    code: int = 10


# ---------------------------------------------------------------------------
# Inventory resolution
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class ResolutionError(OvaImporterError):
    """An inventory object could not be resolved. Never retried."""
    code: int = 11

    @property
    def kind(self) -> Optional[str]:
        return (self.context or {}).get("kind")

    @property
    def name(self) -> Optional[str]:
        return (self.context or {}).get("name")


class NotFoundError(ResolutionError):
    pass


class AmbiguousDefaultError(ResolutionError):
    pass


class AmbiguousNameError(ResolutionError):
    pass


class IncompleteSessionError(ResolutionError):
    pass


# ---------------------------------------------------------------------------
# Archive access
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class SourceError(OvaImporterError):
    """The appliance archive could not be read. Transient and permanent failures look the same."""
    code: int = 20


class SourceOpenError(SourceError):
    pass


class EntryNotFoundError(SourceError):
    @property
    def pattern(self) -> Optional[str]:
        return (self.context or {}).get("pattern")


class ArchiveCorruptError(SourceError):
    pass


# ---------------------------------------------------------------------------
# Import pipeline
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class SpecError(OvaImporterError):
    code: int = 30


class ImportSpecError(SpecError):
    @property
    def detail(self) -> Optional[str]:
        return (self.context or {}).get("detail")


@dataclass(eq=False)
class TransactionError(OvaImporterError):
    """Lease open/upload/complete failure. The lease is abandoned, never resumed."""
    code: int = 31


@dataclass(eq=False)
class FinalizationError(OvaImporterError):
    """The import finished but the machine could not be marked as a template."""
    code: int = 32


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class DeployTimeoutError(OvaImporterError):
    code: int = 124


@dataclass(eq=False)
class DeployCancelledError(OvaImporterError):
    code: int = 130


class BatchDeployError(OvaImporterError):
    """
    At least one deployment in a batch failed.

    `cause` is the first failure observed; `results` holds every deployment
    that did succeed and `errors` every failure seen, keyed by location.
    Some locations may not have been attempted at all.
    """

    def __init__(
        self,
        first: BaseException,
        results: Dict[str, Any],
        errors: Optional[Dict[str, BaseException]] = None,
    ) -> None:
        code = first.code if isinstance(first, OvaImporterError) else 1
        super().__init__(code=code, msg=str(first) or type(first).__name__, cause=first)
        self.results = results
        self.errors = errors or {}


def format_exception_for_cli(e: BaseException, *, verbose: int = 0) -> str:
    """
    One-liner output for CLI.

    verbose=0: just message
    verbose=1: message + compact context (if any)
    verbose>=2: message + context + cause
    """
    if isinstance(e, OvaImporterError):
        return e.user_message(
            include_context=(verbose >= 1),
            include_cause=(verbose >= 2),
        )

    if verbose >= 2:
        return f"{type(e).__name__}: {_one_line(str(e))}"
    return _one_line(str(e)) or type(e).__name__
