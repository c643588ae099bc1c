"""Context variables for structured logging."""

from contextvars import ContextVar
from typing import Dict, Optional

_provider: ContextVar[str] = ContextVar("provider", default="")
_operation: ContextVar[str] = ContextVar("operation", default="")
_scope_key: ContextVar[str] = ContextVar("scope_key", default="")
_trace_id: ContextVar[str] = ContextVar("trace_id", default="")


def set_log_context(
    provider: Optional[str] = None,
    operation: Optional[str] = None,
    scope_key: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> None:
    if provider is not None:
        _provider.set(provider)
    if operation is not None:
        _operation.set(operation)
    if scope_key is not None:
        _scope_key.set(scope_key)
    if trace_id is not None:
        _trace_id.set(trace_id)


def get_log_context() -> Dict[str, str]:
    return {
        "provider": _provider.get(),
        "operation": _operation.get(),
        "scope_key": _scope_key.get(),
        "trace_id": _trace_id.get(),
    }


def clear_log_context() -> None:
    _provider.set("")
    _operation.set("")
    _scope_key.set("")
    _trace_id.set("")
