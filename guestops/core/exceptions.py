# SPDX-License-Identifier: LGPL-3.0-or-later
# guestops/core/exceptions.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

REDACTED = "***REDACTED***"


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


def _one_line(s: str, limit: int = 600) -> str:
    s = (s or "").strip().replace("\r", " ").replace("\n", " ")
    s = " ".join(s.split())
    return s if len(s) <= limit else (s[: limit - 3] + "...")


_SECRET_KEY_PARTS = (
    "pass",
    "password",
    "passwd",
    "secret",
    "token",
    "apikey",
    "api_key",
    "auth",
    "cookie",
    "session",
    "bearer",
    "private",
    "ticket",
)


def _is_secret_key(k: str) -> bool:
    ks = (k or "").lower()
    return any(p in ks for p in _SECRET_KEY_PARTS)


def redact(ctx: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of ``ctx`` with secret-looking keys masked (nested dicts included)."""
    out: Dict[str, Any] = {}
    for k, v in ctx.items():
        if _is_secret_key(str(k)):
            out[k] = REDACTED
        elif isinstance(v, dict):
            out[k] = redact(v)
        else:
            out[k] = v
    return out


def _format_context_compact(ctx: Dict[str, Any]) -> str:
    # Stable order, redaction, single-line.
    safe = redact(ctx)
    return ", ".join(f"{k}={safe[k]!r}" for k in sorted(safe.keys(), key=str))


@dataclass(eq=False)
class GuestOpsError(Exception):
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

    def with_context(self, **ctx: Any) -> "GuestOpsError":
        if self.context is None:
            self.context = {}
        self.context.update(ctx)
        return self

    def user_message(self, *, include_context: bool = False, include_cause: bool = False) -> str:
        """
        Human-friendly message for CLI output/logs.
        """
        parts = [self.msg or self.__class__.__name__]

        if include_context and self.context:
            parts.append(f"[{_one_line(_format_context_compact(self.context), limit=600)}]")

        if include_cause and self.cause is not None:
            parts.append(f"(cause: {type(self.cause).__name__}: {_one_line(str(self.cause))})")

        return " ".join(parts)

    def __str__(self) -> str:
        return self.user_message(include_context=False, include_cause=False)

    def to_dict(self, *, include_cause: bool = False) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "type": self.__class__.__name__,
            "code": self.code,
            "message": self.msg,
            "context": redact(self.context or {}),
        }
        if include_cause and self.cause is not None:
            d["cause"] = {"type": type(self.cause).__name__, "message": _one_line(str(self.cause))}
        return d


class Fatal(GuestOpsError):
    """
    User-facing fatal error (exit code should be honored by top-level main()).
    """
    pass


class VMwareError(GuestOpsError):
    """
    vSphere/vCenter operation failed.
    Use for pyvmomi / SDK / ESXi errors.
    """
    pass


class GuestOperationError(VMwareError):
    """A guest file operation was rejected by the host or the guest tools."""

    @property
    def fault(self) -> Optional[BaseException]:
        """The vmodl.MethodFault raised by the server, if any."""
        return self.cause


class TransferError(VMwareError):
    """Out-of-band HTTP transfer to or from a guest failed."""
    pass


class TransferURLError(TransferError):
    """A transfer URL could not be parsed or resolved to a reachable host."""
    pass


def wrap_guest_fault(op: str, fault: BaseException, **context: Any) -> GuestOperationError:
    # pyVmomi faults carry their text in .msg; str() is often a full dump.
    detail = getattr(fault, "msg", None) or type(fault).__name__
    return GuestOperationError(
        code=30,  # GuestExitCode.VSPHERE_API
        msg=f"{op} failed: {detail}",
        cause=fault,
        context=dict(context, op=op),
    )


def format_exception_for_cli(e: BaseException, *, verbose: int = 0) -> str:
    """
    One-liner output for CLI.

    verbose=0: just message
    verbose=1: message + compact context (if any)
    verbose>=2: message + context + cause
    """
    if isinstance(e, GuestOpsError):
        return e.user_message(
            include_context=(verbose >= 1),
            include_cause=(verbose >= 2),
        )

    if verbose >= 2:
        return f"{type(e).__name__}: {_one_line(str(e))}"
    return _one_line(str(e)) or type(e).__name__
