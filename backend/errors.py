# errors.py — Error taxonomy for the kanban core with KANBAN-DOMAIN-NUMBER codes
from typing import Any, Dict, Optional

# ============================================================
# ERROR CODE CATALOGUE
# KANBAN-{DOMAIN}-{NUMBER}
# Domains: REQ (request shape), TASK, COL, WIP, CF (custom fields), STORE
# ============================================================

ERROR_CATALOGUE = {
    # Request validation
    "KANBAN-REQ-001": {"message": "Invalid identifier", "severity": "info"},
    "KANBAN-REQ-002": {"message": "Position must be non-negative", "severity": "info"},
    "KANBAN-REQ-003": {"message": "Validation failed", "severity": "info"},

    # Lookups
    "KANBAN-TASK-001": {"message": "Task not found", "severity": "info"},
    "KANBAN-COL-001": {"message": "Column not found", "severity": "info"},
    "KANBAN-COL-002": {"message": "Board not found", "severity": "info"},

    # Admission control
    "KANBAN-WIP-001": {"message": "WIP limit exceeded", "severity": "warning"},

    # Custom fields
    "KANBAN-CF-001": {"message": "Unknown custom field", "severity": "warning"},
    "KANBAN-CF-002": {"message": "Missing required custom field", "severity": "info"},
    "KANBAN-CF-003": {"message": "Invalid custom field value", "severity": "info"},

    # Storage / transport (retriable)
    "KANBAN-STORE-001": {"message": "Failed to move task", "severity": "error"},
    "KANBAN-STORE-002": {"message": "Failed to update task positions", "severity": "error"},
    "KANBAN-STORE-003": {"message": "Failed to create task", "severity": "error"},
    "KANBAN-STORE-004": {"message": "Failed to update task", "severity": "error"},
    "KANBAN-STORE-005": {"message": "Failed to delete task", "severity": "error"},
    "KANBAN-STORE-006": {"message": "Failed to update column", "severity": "error"},
    "KANBAN-STORE-007": {"message": "Failed to load tasks", "severity": "error"},
}


class StorageError(Exception):
    """Raised by data-access collaborators when the underlying store fails."""


class KanbanError(Exception):
    """Base class for every caller-facing error raised by the core."""

    code = "KANBAN-REQ-003"
    retriable = False

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or ERROR_CATALOGUE[self.code]["message"]
        self.details = details or {}
        super().__init__(self.message)

    @property
    def severity(self) -> str:
        return ERROR_CATALOGUE[self.code]["severity"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "details": self.details,
        }


# --- Request shape ---

class InvalidIdentifier(KanbanError):
    code = "KANBAN-REQ-001"

    def __init__(self, identifier: Any, kind: str = "task"):
        super().__init__(
            f"Invalid {kind} ID format: {identifier!r}",
            {"identifier": identifier, "kind": kind},
        )


class InvalidPosition(KanbanError):
    code = "KANBAN-REQ-002"

    def __init__(self, position: Any):
        super().__init__(
            f"Position must be non-negative, got {position!r}",
            {"position": position},
        )


class ValidationFailed(KanbanError):
    code = "KANBAN-REQ-003"

    def __init__(self, reason: str, field: Optional[str] = None):
        self.reason = reason
        self.field = field
        prefix = f"{field}: " if field else ""
        super().__init__(f"Validation failed: {prefix}{reason}", {"field": field, "reason": reason})


# --- Lookups ---

class TaskNotFound(KanbanError):
    code = "KANBAN-TASK-001"

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}", {"task_id": task_id})


class ColumnNotFound(KanbanError):
    code = "KANBAN-COL-001"

    def __init__(self, column_id: str):
        super().__init__(f"Column not found: {column_id}", {"column_id": column_id})


class BoardNotFound(KanbanError):
    code = "KANBAN-COL-002"

    def __init__(self, board_id: str):
        super().__init__(f"Board not found: {board_id}", {"board_id": board_id})


# --- Admission control ---

class WipLimitExceeded(KanbanError):
    code = "KANBAN-WIP-001"

    def __init__(self, column_id: str, column_name: Optional[str], limit: int):
        self.column_id = column_id
        self.column_name = column_name
        self.limit = limit
        label = column_name or column_id
        super().__init__(
            f'Column "{label}" has reached its limit of {limit} tasks',
            {"column_id": column_id, "column_name": column_name, "wip_limit": limit},
        )


# --- Custom fields ---

class UnknownCustomField(KanbanError):
    code = "KANBAN-CF-001"

    def __init__(self, field_id: str):
        self.field_id = field_id
        super().__init__(f"Unknown custom field: {field_id}", {"field_id": field_id})


class MissingRequiredCustomField(KanbanError):
    code = "KANBAN-CF-002"

    def __init__(self, field_name: Optional[str] = None, field_id: Optional[str] = None):
        self.field_name = field_name
        self.field_id = field_id
        label = field_name or field_id or "value"
        super().__init__(
            f"Missing required custom field: {label}",
            {"field_name": field_name, "field_id": field_id},
        )


class InvalidCustomFieldValue(KanbanError):
    code = "KANBAN-CF-003"

    def __init__(self, reason: str, field_name: Optional[str] = None, field_id: Optional[str] = None):
        self.reason = reason
        self.field_name = field_name
        self.field_id = field_id
        if field_name:
            message = f"Invalid custom field value: {field_name} - {reason}"
        else:
            message = f"Invalid custom field value: {reason}"
        super().__init__(message, {"field_name": field_name, "field_id": field_id, "reason": reason})


# --- Storage / transport ---

class OperationFailed(KanbanError):
    """Generic transport failure. The storage error text is never exposed."""

    code = "KANBAN-STORE-001"
    retriable = True

    def __init__(self):
        super().__init__()


class MoveFailed(OperationFailed):
    code = "KANBAN-STORE-001"


class PositionUpdateFailed(OperationFailed):
    code = "KANBAN-STORE-002"


class TaskCreateFailed(OperationFailed):
    code = "KANBAN-STORE-003"


class TaskUpdateFailed(OperationFailed):
    code = "KANBAN-STORE-004"


class TaskDeleteFailed(OperationFailed):
    code = "KANBAN-STORE-005"


class ColumnOperationFailed(OperationFailed):
    code = "KANBAN-STORE-006"


class TaskLoadFailed(OperationFailed):
    code = "KANBAN-STORE-007"
