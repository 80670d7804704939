from __future__ import annotations

from typing import Any


class TipPoolError(Exception):
    status_code = 500
    retryable = False

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = {key: value for key, value in context.items() if value is not None}

    def to_detail(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "retryable": self.retryable,
            **{key: str(value) for key, value in self.context.items()},
        }


class ContractViolation(TipPoolError):
    """Caller handed in data that breaks an input contract."""

    status_code = 422

    def __init__(self, field: str, message: str, **context: Any) -> None:
        super().__init__(f"{field}: {message}", field=field, **context)
        self.field = field


class StoreUnavailable(TipPoolError):
    """A store round trip failed; the whole operation may be retried."""

    status_code = 503
    retryable = True

    def __init__(self, operation: str, message: str = "store unavailable", **context: Any) -> None:
        super().__init__(f"{operation}: {message}", operation=operation, **context)
        self.operation = operation


class AggregationTimeout(StoreUnavailable):
    def __init__(self, operation: str, timeout: float, **context: Any) -> None:
        super().__init__(operation, f"timed out after {timeout:g}s", timeout=timeout, **context)
        self.timeout = timeout


class VersionConflict(TipPoolError):
    status_code = 409

    def __init__(self, tenant_id: int, week_key: Any, expected: int, actual: int) -> None:
        super().__init__(
            "record changed since it was loaded; reload and retry",
            tenant_id=tenant_id,
            week_key=week_key,
            expected_version=expected,
            actual_version=actual,
        )
        self.expected = expected
        self.actual = actual


class EmployeeNotFound(TipPoolError):
    status_code = 404

    def __init__(self, tenant_id: int, employee_id: int) -> None:
        super().__init__("employee not found", tenant_id=tenant_id, employee_id=employee_id)


class DuplicateEmployee(TipPoolError):
    status_code = 409

    def __init__(self, tenant_id: int, name: str) -> None:
        super().__init__("employee already exists", tenant_id=tenant_id, name=name)
