"""数据访问与业务操作的异常定义。

分类：
- ValidationError: 表单校验失败，发生在任何写入之前
- DataStoreError: 数据库调用失败
- PreconditionError: 前置条件不满足（如删除未分类、哨兵缺失），不发出任何写入
- ConfirmationRequired: 破坏性级联需要显式确认
"""
from typing import Optional


class SalesTrackerError(Exception):
    """Base exception for sales tracker operations."""
    pass


class ValidationError(SalesTrackerError):
    """Form input failed validation; nothing was written."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        self.field = field
        super().__init__(message)


class DataStoreError(SalesTrackerError):
    """A data store call failed."""
    pass


class CascadeStepError(DataStoreError):
    """A cascade step failed; later steps were not run."""

    def __init__(self, operation: str, step_name: str, step_index: int,
                 entity_id: int, cause: Exception) -> None:
        self.operation = operation
        self.step_name = step_name
        self.step_index = step_index
        self.entity_id = entity_id
        self.cause = cause
        super().__init__(
            f"{operation}({entity_id}) failed at step "
            f"{step_index} '{step_name}': {cause}"
        )


class PreconditionError(SalesTrackerError):
    """Operation rejected before any destructive call."""
    pass


class SentinelMissingError(PreconditionError):
    """The uncategorized sale type row does not exist."""
    pass


class ConfirmationRequired(SalesTrackerError):
    """A destructive cascade needs explicit confirmation."""

    def __init__(self, message: str, dependent_count: int) -> None:
        self.dependent_count = dependent_count
        super().__init__(message)


class ReportError(SalesTrackerError):
    """Report data could not be fetched."""
    pass
