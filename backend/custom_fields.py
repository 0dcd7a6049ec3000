# custom_fields.py — Per-board custom field validation
"""
Two layers:

* ``validate_value`` checks one value against a field type, its
  type-specific config and the required flag, and returns a tagged value
  (``NumberValue``, ``SelectValue``...) discriminated on ``type``.
* ``validate_task_custom_fields`` checks a task's whole value map against
  every definition of the board: unknown ids, required fields, then each
  value through ``validate_value``.

On update the caller passes the merged final state, built with
``merge_custom_field_values``, never the raw patch.
"""

import logging
import math
from datetime import datetime
from typing import Annotated, Any, Callable, Dict, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from errors import InvalidCustomFieldValue, MissingRequiredCustomField, UnknownCustomField
from models import CustomFieldType
from schemas import parse_datetime
from stores import CustomFieldStore

logger = logging.getLogger("kanban.custom_fields")


# ============================================================
# TYPE-SPECIFIC CONFIGURATION
# ============================================================

class NumberFieldConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    min: Optional[float] = None
    max: Optional[float] = None
    step: Optional[float] = Field(None, gt=0)
    allow_decimals: Optional[bool] = None

    @model_validator(mode="before")
    @classmethod
    def legacy_aliases(cls, data):
        if isinstance(data, dict):
            data = dict(data)
            if data.get("min") is None and data.get("min_value") is not None:
                data["min"] = data["min_value"]
            if data.get("max") is None and data.get("max_value") is not None:
                data["max"] = data["max_value"]
            for alias in ("allow_decimal", "allow_decimals", "allowDecimals"):
                if data.get(alias) is not None:
                    data["allow_decimals"] = data[alias]
                    break
        return data


class SelectFieldConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    options: List[str] = Field(default_factory=list)
    multiple: bool = False


class DateFieldConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    min: Optional[datetime] = None
    max: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def legacy_aliases(cls, data):
        if isinstance(data, dict):
            data = dict(data)
            data["min"] = data.get("min") or data.get("min_date")
            data["max"] = data.get("max") or data.get("max_date")
        return data

    @field_validator("min", "max", mode="before")
    @classmethod
    def parse_bound(cls, v):
        return None if v is None else parse_datetime(v)


class TextFieldConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    max_length: Optional[int] = Field(None, gt=0)
    multiline: bool = False


class CheckboxFieldConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    default: Optional[bool] = None


# ============================================================
# TAGGED VALUES
# ============================================================

class NumberValue(BaseModel):
    type: Literal["number"] = "number"
    value: Union[int, float]


class SelectValue(BaseModel):
    type: Literal["select"] = "select"
    value: str


class MultiSelectValue(BaseModel):
    type: Literal["multi_select"] = "multi_select"
    value: List[str]


class DateValue(BaseModel):
    type: Literal["date"] = "date"
    value: datetime


class TextValue(BaseModel):
    type: Literal["text"] = "text"
    value: str


class CheckboxValue(BaseModel):
    type: Literal["checkbox"] = "checkbox"
    value: bool


FieldValue = Annotated[
    Union[NumberValue, SelectValue, MultiSelectValue, DateValue, TextValue, CheckboxValue],
    Field(discriminator="type"),
]


# ============================================================
# FIELD DEFINITION VALIDATOR
# ============================================================

def _fmt(number: float) -> str:
    return f"{number:g}"


def _parse_config(model, config: Optional[Dict[str, Any]]):
    try:
        return model.model_validate(config or {})
    except ValidationError as exc:
        first = exc.errors()[0]
        raise InvalidCustomFieldValue(f"Invalid field configuration: {first.get('msg')}")


def _validate_number(config, value) -> NumberValue:
    cfg = _parse_config(NumberFieldConfig, config)
    # bool is an int subclass and must not pass as a number
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidCustomFieldValue("Value must be a number")
    # only floats can be nan or inf
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidCustomFieldValue("Value must be a number")
    if cfg.allow_decimals is False and isinstance(value, float) and not value.is_integer():
        raise InvalidCustomFieldValue("Value must be an integer")
    if cfg.min is not None and value < cfg.min:
        raise InvalidCustomFieldValue(f"Value must be at least {_fmt(cfg.min)}")
    if cfg.max is not None and value > cfg.max:
        raise InvalidCustomFieldValue(f"Value must be at most {_fmt(cfg.max)}")
    return NumberValue(value=value)


def _validate_select(config, value) -> Union[SelectValue, MultiSelectValue]:
    cfg = _parse_config(SelectFieldConfig, config)
    if not cfg.options:
        raise InvalidCustomFieldValue("Select field must have options configured")

    if cfg.multiple:
        if not isinstance(value, list):
            raise InvalidCustomFieldValue("Value must be an array")
        for item in value:
            if not isinstance(item, str) or item not in cfg.options:
                raise InvalidCustomFieldValue(f"Invalid option: {item}")
        return MultiSelectValue(value=list(value))

    if not isinstance(value, str) or value not in cfg.options:
        raise InvalidCustomFieldValue(f"Value must be one of: {', '.join(cfg.options)}")
    return SelectValue(value=value)


def _validate_multi_select(config, value) -> MultiSelectValue:
    return _validate_select({**(config or {}), "multiple": True}, value)


def _validate_date(config, value) -> DateValue:
    cfg = _parse_config(DateFieldConfig, config)
    try:
        parsed = parse_datetime(value)
    except (TypeError, ValueError):
        raise InvalidCustomFieldValue("Value must be a valid date")
    if cfg.min is not None and parsed < cfg.min:
        raise InvalidCustomFieldValue(f"Date must be on or after {cfg.min.date().isoformat()}")
    if cfg.max is not None and parsed > cfg.max:
        raise InvalidCustomFieldValue(f"Date must be on or before {cfg.max.date().isoformat()}")
    return DateValue(value=parsed)


def _validate_text(config, value) -> TextValue:
    cfg = _parse_config(TextFieldConfig, config)
    if not isinstance(value, str):
        raise InvalidCustomFieldValue("Value must be a string")
    if cfg.max_length is not None and len(value) > cfg.max_length:
        raise InvalidCustomFieldValue(f"Value exceeds maximum length of {cfg.max_length}")
    return TextValue(value=value)


def _validate_checkbox(config, value) -> CheckboxValue:
    _parse_config(CheckboxFieldConfig, config)
    if not isinstance(value, bool):
        raise InvalidCustomFieldValue("Value must be a boolean")
    return CheckboxValue(value=value)


VALIDATORS: Dict[CustomFieldType, Callable[[Optional[Dict[str, Any]], Any], BaseModel]] = {
    CustomFieldType.NUMBER: _validate_number,
    CustomFieldType.SELECT: _validate_select,
    CustomFieldType.MULTI_SELECT: _validate_multi_select,
    CustomFieldType.DATE: _validate_date,
    CustomFieldType.TEXT: _validate_text,
    CustomFieldType.CHECKBOX: _validate_checkbox,
}


def validate_value(
    field_type: Union[CustomFieldType, str],
    config: Optional[Dict[str, Any]],
    required: bool,
    value: Any,
) -> Optional[FieldValue]:
    """Validate one value and return its tagged form.

    Returns None for an absent optional value. An absent required value raises
    MissingRequiredCustomField, every other failure InvalidCustomFieldValue.
    """
    if value is None:
        if required:
            raise MissingRequiredCustomField()
        return None

    try:
        field_type = CustomFieldType(field_type)
    except ValueError:
        raise InvalidCustomFieldValue(f"Unknown field type: {field_type}")

    return VALIDATORS[field_type](config, value)


# ============================================================
# TASK-LEVEL VALIDATION ENGINE
# ============================================================

def is_empty_value(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    if isinstance(value, (list, tuple)) and not value:
        return True
    return False


def merge_custom_field_values(
    existing: Optional[Dict[str, Any]], patch: Optional[Dict[str, Any]]
) -> Dict[str, Any]:
    """Overlay ``patch`` on stored values; a key set to None is removed."""
    merged = dict(existing or {})
    merged.update(patch or {})
    return {field_id: value for field_id, value in merged.items() if value is not None}


def _storable(result: FieldValue) -> Any:
    """JSON form of a tagged value; dates become ISO 8601 strings in UTC."""
    if isinstance(result, DateValue):
        return result.value.isoformat()
    return result.value


async def validate_task_custom_fields(
    store: CustomFieldStore,
    board_id: str,
    values: Dict[str, Any],
    stored_keys: Iterable[str] = (),
) -> Dict[str, Any]:
    """Validate a task's full custom field map against the board's definitions.

    ``stored_keys`` names values carried over from the stored task; if their
    definition no longer exists they are dropped instead of rejected.
    Returns the map to persist.
    """
    definitions = await store.get_by_board_id(board_id)
    by_id = {definition.id: definition for definition in definitions}
    carried_over = set(stored_keys)

    cleaned: Dict[str, Any] = {}
    for field_id, value in values.items():
        definition = by_id.get(field_id)
        if definition is None:
            if field_id in carried_over:
                logger.debug(f"Dropping value for removed custom field {field_id} on board {board_id}")
                continue
            raise UnknownCustomField(field_id)

        if definition.required and is_empty_value(value):
            raise MissingRequiredCustomField(definition.name, definition.id)
        if value is None:
            continue

        try:
            result = validate_value(definition.field_type, definition.config, definition.required, value)
        except InvalidCustomFieldValue as exc:
            raise InvalidCustomFieldValue(exc.reason, definition.name, definition.id) from exc
        cleaned[field_id] = _storable(result)

    for definition in definitions:
        if definition.required and definition.id not in cleaned:
            raise MissingRequiredCustomField(definition.name, definition.id)

    return cleaned
