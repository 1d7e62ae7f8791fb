"""Sync domain - orchestration of data, file and full-text sync sessions."""

from .autosync import AutoSyncScheduler
from .errors import SEVERITY_PRECEDENCE, ErrorAggregator, primary_severity
from .exceptions import (
    AccessDeniedError,
    APIKeyInvalidError,
    APIKeyNotSetError,
    ErrorType,
    GateStoppedError,
    ObjectUploadError,
    OfflineError,
    PreconditionFailedError,
    SyncError,
    SyncInProgressError,
    TooManyAttemptsError,
    UnexpectedStatusError,
    UserCancelledError,
)
from .gate import ConcurrencyGate
from .libraries import LibrarySetResolver, group_permissions
from .models import (
    AccessGrant,
    EngineOptions,
    FileSyncResult,
    GroupAccess,
    GroupReconciliationResult,
    LibraryType,
    LocalGroup,
    PhaseError,
    PhaseOutcome,
    SyncOptions,
    SyncSession,
)
from .phases import PhaseContext, run_data_phase, run_file_phase, run_fulltext_phase
from .ports import (
    APIClient,
    DataEngine,
    Decision,
    DecisionKind,
    DecisionPort,
    FullTextEngine,
    LocalStore,
    Notifier,
    StorageController,
    StorageEngine,
)
from .runner import SyncRunner
from .scheduler import RetryScheduler
from .storage import StorageControllerRegistry

__all__ = [
    # Runner
    "SyncRunner",
    "AutoSyncScheduler",
    "RetryScheduler",
    "LibrarySetResolver",
    "group_permissions",
    "ConcurrencyGate",
    "StorageControllerRegistry",
    "ErrorAggregator",
    "SEVERITY_PRECEDENCE",
    "primary_severity",
    # Phases
    "PhaseContext",
    "run_data_phase",
    "run_file_phase",
    "run_fulltext_phase",
    # Models
    "AccessGrant",
    "EngineOptions",
    "FileSyncResult",
    "GroupAccess",
    "GroupReconciliationResult",
    "LibraryType",
    "LocalGroup",
    "PhaseError",
    "PhaseOutcome",
    "SyncOptions",
    "SyncSession",
    # Ports
    "APIClient",
    "DataEngine",
    "Decision",
    "DecisionKind",
    "DecisionPort",
    "FullTextEngine",
    "LocalStore",
    "Notifier",
    "StorageController",
    "StorageEngine",
    # Exceptions
    "AccessDeniedError",
    "APIKeyInvalidError",
    "APIKeyNotSetError",
    "ErrorType",
    "GateStoppedError",
    "ObjectUploadError",
    "OfflineError",
    "PreconditionFailedError",
    "SyncError",
    "SyncInProgressError",
    "TooManyAttemptsError",
    "UnexpectedStatusError",
    "UserCancelledError",
]
