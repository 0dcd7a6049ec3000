# schemas.py — Records exchanged with the stores and request payloads
import re
from datetime import date, datetime, timezone
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from errors import InvalidIdentifier, ValidationFailed
from models import TaskPriority, CustomFieldType

ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")
UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
HEX_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"
DEFAULT_COLUMN_COLOR = "#6B7280"
MAX_TITLE_LENGTH = 255
MAX_COLUMN_NAME_LENGTH = 50


def check_identifier(value: Any, kind: str = "task") -> str:
    """Reject malformed ids. UUID-shaped ids must be real UUIDs."""
    if not isinstance(value, str) or not ID_PATTERN.match(value):
        raise InvalidIdentifier(value, kind)
    if "-" in value and len(value) > 30 and not UUID_PATTERN.match(value):
        raise InvalidIdentifier(value, kind)
    return value


def parse_datetime(value: Any) -> datetime:
    """Parse an ISO date/datetime (or date object) into an aware datetime.

    Naive values are read as UTC so they compare with aware ones.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    else:
        raise ValueError(f"Invalid date: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def validation_failed(exc: ValidationError) -> ValidationFailed:
    """Convert the first pydantic error into the core's ValidationFailed."""
    first = exc.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    message = str(first.get("msg", "invalid value"))
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return ValidationFailed(message, field=field)


def parse_payload(model, data):
    """Validate ``data`` into ``model``; pydantic errors become ValidationFailed."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise validation_failed(exc)


def _clean_tags(tags: Optional[List[str]]) -> Optional[List[str]]:
    if tags is None:
        return None
    cleaned: List[str] = []
    for tag in tags:
        if not tag:
            raise ValueError("All tags must be non-empty strings")
        if tag not in cleaned:
            cleaned.append(tag)
    return cleaned


def _parse_optional_date(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return parse_datetime(value)
    except (TypeError, ValueError):
        raise ValueError("Invalid date format")


# ============================================================
# RECORDS
# ============================================================

class TaskRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    board_column_id: str
    title: str
    description: Optional[str] = None
    assignee_id: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    custom_fields_values: Dict[str, Any] = Field(default_factory=dict)
    position: int = 0
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @field_validator("tags", "custom_fields_values", mode="before")
    @classmethod
    def null_as_empty(cls, v, info):
        if v is None:
            return [] if info.field_name == "tags" else {}
        return v


class ColumnRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    board_id: str
    name: str
    color: str = DEFAULT_COLUMN_COLOR
    wip_limit: Optional[int] = None
    position: int = 0


class BoardRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    organisation_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    columns: List[ColumnRecord] = Field(default_factory=list)


class FieldDefinition(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    board_id: str
    name: str
    field_type: CustomFieldType
    config: Dict[str, Any] = Field(default_factory=dict)
    required: bool = False
    position: int = 0

    @field_validator("config", mode="before")
    @classmethod
    def null_config(cls, v):
        return v or {}


class PositionUpdate(BaseModel):
    """One row of a batch position update."""

    id: str
    position: int
    board_column_id: Optional[str] = None


# ============================================================
# TASK PAYLOADS
# ============================================================

class TaskCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    title: str = Field(..., min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = None
    board_column_id: str = Field(..., min_length=1)
    assignee_id: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    custom_fields_values: Dict[str, Any] = Field(default_factory=dict)
    position: Optional[int] = Field(None, ge=0)
    created_by: Optional[str] = None

    @field_validator("due_date", mode="before")
    @classmethod
    def validate_due_date(cls, v):
        return _parse_optional_date(v)

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v):
        return _clean_tags(v)

    @field_validator("custom_fields_values", mode="before")
    @classmethod
    def null_custom_fields(cls, v):
        return v or {}


class TaskUpdate(BaseModel):
    """Partial update; only fields present in the payload are applied."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    title: Optional[str] = Field(None, min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = None
    assignee_id: Optional[str] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    tags: Optional[List[str]] = None
    custom_fields_values: Optional[Dict[str, Any]] = None

    @field_validator("title", "priority")
    @classmethod
    def not_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    @field_validator("due_date", mode="before")
    @classmethod
    def validate_due_date(cls, v):
        return _parse_optional_date(v)

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v):
        return _clean_tags(v)


class MoveRequest(BaseModel):
    """A single invocation of the move engine. Not persisted.

    Ids are checked by ``check_identifier`` so a malformed one, whatever its
    type, raises InvalidIdentifier.
    """

    task_id: Any
    source_column_id: Any
    target_column_id: Any
    target_position: int


# ============================================================
# COLUMN PAYLOADS
# ============================================================

class ColumnCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    board_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=MAX_COLUMN_NAME_LENGTH)
    color: str = Field(DEFAULT_COLUMN_COLOR, pattern=HEX_COLOR_PATTERN)
    wip_limit: Optional[int] = Field(None, gt=0)


class ColumnUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=MAX_COLUMN_NAME_LENGTH)
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)
    wip_limit: Optional[int] = Field(None, gt=0)  # explicit null removes the limit

    @field_validator("name", "color")
    @classmethod
    def not_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v
