"""数据库模块

对外暴露 DatabaseManager 门面以及常用的模型与异常。
"""
from database.manager import DatabaseManager
from database.exceptions import (
    SalesTrackerError, ValidationError, DataStoreError, CascadeStepError,
    PreconditionError, SentinelMissingError, ConfirmationRequired,
    ReportError,
)

__all__ = [
    "DatabaseManager",
    "SalesTrackerError",
    "ValidationError",
    "DataStoreError",
    "CascadeStepError",
    "PreconditionError",
    "SentinelMissingError",
    "ConfirmationRequired",
    "ReportError",
]
