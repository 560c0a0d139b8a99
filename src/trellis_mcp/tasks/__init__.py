"""Task records, storage, and context manifests."""

from .models import (
    ArchivedTask,
    ContextEntry,
    CreateTaskOptions,
    DevType,
    PhaseAction,
    Task,
    TaskListing,
    default_phases,
)
from .store import TaskExistsError, TaskStore, TaskStoreError, TaskValidationError
from .context import (
    ManifestReport,
    add_context,
    init_context,
    list_context,
    manifest_for_phase,
    manifest_path,
    read_jsonl,
    validate_context,
    write_jsonl,
)

__all__ = [
    "ArchivedTask",
    "ContextEntry",
    "CreateTaskOptions",
    "DevType",
    "ManifestReport",
    "PhaseAction",
    "Task",
    "TaskExistsError",
    "TaskListing",
    "TaskStore",
    "TaskStoreError",
    "TaskValidationError",
    "add_context",
    "default_phases",
    "init_context",
    "list_context",
    "manifest_for_phase",
    "manifest_path",
    "read_jsonl",
    "validate_context",
    "write_jsonl",
]
