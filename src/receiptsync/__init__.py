"""Sync retailer purchase history into an inventory service."""

from receiptsync.auth_client import AuthenticatedClient, HttpResponse
from receiptsync.channel import (
    CheckLogin,
    FetchRecordDetail,
    FetchRecords,
    Ping,
    RemoteChannel,
)
from receiptsync.config import SyncConfig
from receiptsync.credentials import (
    CredentialStore,
    JsonFileCredentialStore,
    MemoryCredentialStore,
)
from receiptsync.errors import ErrorKind, SyncError
from receiptsync.models import (
    ProgressSnapshot,
    StatusReport,
    SyncResult,
    filter_record_detail,
)
from receiptsync.orchestrator import SyncOrchestrator, SyncState
from receiptsync.progress import ProgressPublisher
from receiptsync.service import SyncService
from receiptsync.status import StatusAggregator

__all__ = [
    "AuthenticatedClient",
    "CheckLogin",
    "CredentialStore",
    "ErrorKind",
    "FetchRecordDetail",
    "FetchRecords",
    "HttpResponse",
    "JsonFileCredentialStore",
    "MemoryCredentialStore",
    "Ping",
    "ProgressPublisher",
    "ProgressSnapshot",
    "RemoteChannel",
    "StatusAggregator",
    "StatusReport",
    "SyncConfig",
    "SyncError",
    "SyncOrchestrator",
    "SyncResult",
    "SyncService",
    "SyncState",
    "filter_record_detail",
]
