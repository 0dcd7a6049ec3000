# stores.py — Data-access collaborator interfaces consumed by the core
"""
The core never talks to a database directly. Every operation receives a
unit of work exposing three narrow stores; the unit of work is also the
transaction boundary around an operation's read-compute-write sequence.

Stores signal I/O failures by raising ``errors.StorageError``.
"""

from typing import Any, Dict, List, Optional, Protocol

from schemas import (
    BoardRecord, ColumnRecord, FieldDefinition, PositionUpdate, TaskRecord,
)


class TaskStore(Protocol):
    async def get_by_id(self, task_id: str) -> Optional[TaskRecord]:
        """Return the non-deleted task or None."""
        ...

    async def get_by_column_id(self, column_id: str) -> List[TaskRecord]:
        """Return the column's non-deleted tasks ordered by position."""
        ...

    async def create(self, data: Dict[str, Any]) -> TaskRecord:
        ...

    async def update(self, task_id: str, patch: Dict[str, Any]) -> TaskRecord:
        ...

    async def batch_update(self, updates: List[PositionUpdate]) -> None:
        """Apply every position update or raise StorageError."""
        ...

    async def delete(self, task_id: str, soft: bool = True) -> None:
        ...


class BoardStore(Protocol):
    async def get_column_by_id(self, column_id: str) -> Optional[ColumnRecord]:
        ...

    async def get_by_id(self, board_id: str, include_columns: bool = False) -> Optional[BoardRecord]:
        ...

    async def create_column(self, data: Dict[str, Any]) -> ColumnRecord:
        ...

    async def update_column(self, column_id: str, patch: Dict[str, Any]) -> ColumnRecord:
        ...

    async def delete_column(self, column_id: str) -> None:
        ...

    async def batch_update_columns(self, updates: List[PositionUpdate]) -> None:
        """Renumber sibling columns; ``board_column_id`` is unused here."""
        ...


class CustomFieldStore(Protocol):
    async def get_by_board_id(self, board_id: str) -> List[FieldDefinition]:
        ...


class UnitOfWork(Protocol):
    """Transaction scope: commit when the block exits cleanly, roll back otherwise."""

    tasks: TaskStore
    boards: BoardStore
    custom_fields: CustomFieldStore

    async def __aenter__(self) -> "UnitOfWork":
        ...

    async def __aexit__(self, exc_type, exc, tb) -> None:
        ...
