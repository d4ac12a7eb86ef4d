"""bucketsync: concurrent download and sync of object-store prefixes."""
from .orchestrator import DownloadOrchestrator, SessionHandle
from .runtime_types import RemoteObject, SessionProgress, Status, SyncPlan, TransferJob

__all__ = [
    "DownloadOrchestrator",
    "SessionHandle",
    "RemoteObject",
    "SessionProgress",
    "Status",
    "SyncPlan",
    "TransferJob",
]
