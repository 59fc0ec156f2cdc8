from .engine import ReconciliationEngine, plan
from .exceptions import (
    JobExistsError,
    JobNotFoundError,
    JobStateError,
    PartialFailureError,
)
from .locks import JobLocks
from .store import InMemoryJobRecordStore, JobRecordStore, JsonFileJobRecordStore

__all__ = [
    "ReconciliationEngine",
    "plan",
    "JobLocks",
    "JobRecordStore",
    "InMemoryJobRecordStore",
    "JsonFileJobRecordStore",
    "JobExistsError",
    "JobNotFoundError",
    "JobStateError",
    "PartialFailureError",
]
