"""Decorators for tracing engine operations."""

import functools
from collections.abc import Callable
from datetime import datetime
from typing import Any

import logfire


def trace_operation(operation_name: str):
    """Decorator to trace a circulation, fine or catalog operation."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with logfire.span(
                "operation.{operation_name}",
                operation_name=operation_name,
                operation_category=_categorize_operation(operation_name),
            ) as span:
                start_time = datetime.now()
                _add_attributes(span, "input", kwargs)

                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    span.set_attribute("operation.success", False)
                    span.set_attribute("operation.error", type(e).__name__)
                    span.set_attribute("operation.error_message", str(e))
                    raise

                span.set_attribute("operation.success", True)
                span.set_attribute(
                    "operation.duration_ms", (datetime.now() - start_time).total_seconds() * 1000
                )
                return result

        return wrapper

    return decorator


def _categorize_operation(operation_name: str) -> str:
    """Group operations for dashboards."""
    if operation_name in {"borrow", "return", "reserve", "cancel_reservation"}:
        return "circulation"
    if "fine" in operation_name or "accrual" in operation_name:
        return "fines"
    if "book" in operation_name or "copies" in operation_name:
        return "catalog"
    if "member" in operation_name:
        return "members"
    return "general"


def _add_attributes(span: Any, prefix: str, values: dict[str, Any]) -> None:
    """Record simple keyword arguments on the span."""
    for key, value in values.items():
        if isinstance(value, str | int | float | bool):
            span.set_attribute(f"{prefix}.{key}", value)
