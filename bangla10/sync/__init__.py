"""
Sync: keeping local progress and the remote copy in step.

Client side:
- ProgressClient: HTTP client for /api/progress
- SyncOrchestrator: debounced, single-flight pushes and startup bootstrap

Server side:
- ProgressService: read-before-write revision bump
- KvBackend / BlobBackend: storage adapters
"""

from .backends import BlobBackend, KvBackend, StorageBackend, resolve_backend
from .envelope import Envelope, decode, encode, sanitize_state, snapshot
from .orchestrator import SyncOrchestrator, SyncPhase, SyncState
from .progress_service import ProgressService
from .remote_client import ProgressClient, PushResult, RemoteSnapshot

__all__ = [
    # Envelope
    "Envelope",
    "encode",
    "decode",
    "sanitize_state",
    "snapshot",
    # Client
    "ProgressClient",
    "RemoteSnapshot",
    "PushResult",
    "SyncOrchestrator",
    "SyncPhase",
    "SyncState",
    # Server
    "ProgressService",
    "StorageBackend",
    "KvBackend",
    "BlobBackend",
    "resolve_backend",
]
