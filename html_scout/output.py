"""
Fatal-condition helpers shared by the orchestrator and the CLI.

The audit never calls :func:`sys.exit` itself: :func:`abort_with` raises
:class:`AuditAborted`, the CLI prints the message and exits with status 1.
"""
from __future__ import annotations

from typing import Any, NoReturn

__all__ = ["AuditAborted", "InternalAuditError", "abort_with", "check_internal"]


class AuditAborted(RuntimeError):
    """Pre-flight failure: the run stops before any document is tested."""


class InternalAuditError(RuntimeError):
    """A condition that cannot happen in correct operation."""


def abort_with(*parts: Any) -> NoReturn:
    """Abort the run; *parts* are joined with spaces like ``print``."""
    raise AuditAborted(" ".join(str(p) for p in parts))


def check_internal(condition: bool, message: str) -> None:
    if not condition:
        raise InternalAuditError(message)
