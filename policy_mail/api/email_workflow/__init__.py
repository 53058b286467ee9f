"""
Email workflow module for composing policy violation emails.
"""

from .config import EmailWorkflowConfig, get_email_config
from .record_store import CachedRecordStore, InMemoryRecordStore, RecordStore
from .routes import router as email_router
from .workflow_manager import EmailWorkflowManager, build_workflow_manager

__all__ = [
    "EmailWorkflowConfig",
    "get_email_config",
    "RecordStore",
    "InMemoryRecordStore",
    "CachedRecordStore",
    "email_router",
    "EmailWorkflowManager",
    "build_workflow_manager",
]
