# sql_stores.py — SQLAlchemy implementation of the store interfaces and unit of work
"""
``SqlUnitOfWork`` owns one AsyncSession per ``async with`` block: the block
commits when it exits cleanly and rolls back otherwise, so every write an
operation makes (primary update plus batch shifts) lands atomically.
On server databases the column and its task rows are read FOR UPDATE, so
concurrent moves into one column queue behind the WIP check.

Every SQLAlchemyError is re-raised as ``errors.StorageError``.
"""

import functools
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from database import async_session_maker
from errors import StorageError
from models import Board, BoardColumn, CustomFieldDefinition, Task, TaskPriority, new_uuid, utcnow
from schemas import (
    DEFAULT_COLUMN_COLOR, BoardRecord, ColumnRecord, FieldDefinition, PositionUpdate, TaskRecord,
)

logger = logging.getLogger("kanban.sql")

TASK_FIELDS = (
    "title", "description", "assignee_id", "priority", "due_date",
    "tags", "custom_fields_values", "position", "board_column_id", "created_by",
)
COLUMN_FIELDS = ("name", "color", "wip_limit", "position")


def storage_errors(func):
    """Translate SQLAlchemy failures raised by a store method into StorageError."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except SQLAlchemyError as exc:
            logger.warning(f"{func.__qualname__} failed: {exc}")
            raise StorageError(str(exc)) from exc

    return wrapper


def column_query(column_id: str, lock: bool = False):
    stmt = select(BoardColumn).where(BoardColumn.id == column_id)
    return stmt.with_for_update() if lock else stmt


def column_tasks_query(column_id: str, lock: bool = False):
    stmt = (
        select(Task)
        .where(Task.board_column_id == column_id, Task.deleted_at.is_(None))
        .order_by(Task.position, Task.created_at)
    )
    return stmt.with_for_update() if lock else stmt


# ============================================================
# TASKS
# ============================================================

class SqlTaskStore:
    def __init__(self, session: AsyncSession, lock_rows: bool = False):
        self.session = session
        self.lock_rows = lock_rows

    async def _load(self, task_id: str) -> Optional[Task]:
        stmt = select(Task).where(Task.id == task_id, Task.deleted_at.is_(None))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    @storage_errors
    async def get_by_id(self, task_id: str) -> Optional[TaskRecord]:
        task = await self._load(task_id)
        return TaskRecord.model_validate(task) if task else None

    @storage_errors
    async def get_by_column_id(self, column_id: str) -> List[TaskRecord]:
        result = await self.session.execute(column_tasks_query(column_id, self.lock_rows))
        return [TaskRecord.model_validate(t) for t in result.scalars().all()]

    @storage_errors
    async def create(self, data: Dict[str, Any]) -> TaskRecord:
        now = utcnow()
        values = {field: data.get(field) for field in TASK_FIELDS}
        values["priority"] = values["priority"] or TaskPriority.MEDIUM
        values["tags"] = values["tags"] or []
        values["custom_fields_values"] = values["custom_fields_values"] or {}
        values["position"] = values["position"] or 0
        # every column is set explicitly so nothing is left to lazy-load after flush
        task = Task(id=data.get("id") or new_uuid(), created_at=now, updated_at=now, deleted_at=None, **values)
        self.session.add(task)
        await self.session.flush()
        return TaskRecord.model_validate(task)

    @storage_errors
    async def update(self, task_id: str, patch: Dict[str, Any]) -> TaskRecord:
        task = await self._load(task_id)
        if task is None:
            raise StorageError(f"task {task_id} disappeared during update")
        for field, value in patch.items():
            if field in TASK_FIELDS:
                setattr(task, field, value)
        task.updated_at = utcnow()
        await self.session.flush()
        return TaskRecord.model_validate(task)

    @storage_errors
    async def batch_update(self, updates: List[PositionUpdate]) -> None:
        now = utcnow()
        for row in updates:
            values = {"position": row.position, "updated_at": now}
            if row.board_column_id is not None:
                values["board_column_id"] = row.board_column_id
            await self.session.execute(update(Task).where(Task.id == row.id).values(**values))
        await self.session.flush()
        logger.debug(f"Applied {len(updates)} task position updates")

    @storage_errors
    async def delete(self, task_id: str, soft: bool = True) -> None:
        if soft:
            await self.session.execute(
                update(Task).where(Task.id == task_id).values(deleted_at=utcnow())
            )
        else:
            await self.session.execute(delete(Task).where(Task.id == task_id))
        await self.session.flush()


# ============================================================
# BOARDS AND COLUMNS
# ============================================================

class SqlBoardStore:
    def __init__(self, session: AsyncSession, lock_rows: bool = False):
        self.session = session
        self.lock_rows = lock_rows

    @storage_errors
    async def get_column_by_id(self, column_id: str) -> Optional[ColumnRecord]:
        result = await self.session.execute(column_query(column_id, self.lock_rows))
        column = result.scalar_one_or_none()
        return ColumnRecord.model_validate(column) if column else None

    @storage_errors
    async def get_by_id(self, board_id: str, include_columns: bool = False) -> Optional[BoardRecord]:
        stmt = select(Board).where(Board.id == board_id, Board.deleted_at.is_(None))
        if include_columns:
            stmt = stmt.options(selectinload(Board.columns)).execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        board = result.scalar_one_or_none()
        if board is None:
            return None
        if include_columns:
            return BoardRecord.model_validate(board)
        return BoardRecord(
            id=board.id,
            organisation_id=board.organisation_id,
            name=board.name,
            description=board.description,
        )

    @storage_errors
    async def create_column(self, data: Dict[str, Any]) -> ColumnRecord:
        now = utcnow()
        column = BoardColumn(
            id=data.get("id") or new_uuid(),
            board_id=data["board_id"],
            name=data["name"],
            color=data.get("color") or DEFAULT_COLUMN_COLOR,
            wip_limit=data.get("wip_limit"),
            position=data.get("position") or 0,
            created_at=now,
            updated_at=now,
        )
        self.session.add(column)
        await self.session.flush()
        return ColumnRecord.model_validate(column)

    @storage_errors
    async def update_column(self, column_id: str, patch: Dict[str, Any]) -> ColumnRecord:
        result = await self.session.execute(select(BoardColumn).where(BoardColumn.id == column_id))
        column = result.scalar_one_or_none()
        if column is None:
            raise StorageError(f"column {column_id} disappeared during update")
        for field, value in patch.items():
            if field in COLUMN_FIELDS:
                setattr(column, field, value)
        column.updated_at = utcnow()
        await self.session.flush()
        return ColumnRecord.model_validate(column)

    @storage_errors
    async def delete_column(self, column_id: str) -> None:
        await self.session.execute(delete(BoardColumn).where(BoardColumn.id == column_id))
        await self.session.flush()

    @storage_errors
    async def batch_update_columns(self, updates: List[PositionUpdate]) -> None:
        now = utcnow()
        for row in updates:
            await self.session.execute(
                update(BoardColumn)
                .where(BoardColumn.id == row.id)
                .values(position=row.position, updated_at=now)
            )
        await self.session.flush()


# ============================================================
# CUSTOM FIELD DEFINITIONS
# ============================================================

class SqlCustomFieldStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    @storage_errors
    async def get_by_board_id(self, board_id: str) -> List[FieldDefinition]:
        stmt = (
            select(CustomFieldDefinition)
            .where(CustomFieldDefinition.board_id == board_id)
            .order_by(CustomFieldDefinition.position)
        )
        result = await self.session.execute(stmt)
        return [FieldDefinition.model_validate(d) for d in result.scalars().all()]


# ============================================================
# UNIT OF WORK
# ============================================================

class SqlUnitOfWork:
    """One transaction per ``async with`` block. Reusable, but not re-entrant."""

    def __init__(self, session_factory: async_sessionmaker = None):
        self._session_factory = session_factory or async_session_maker
        self.session: Optional[AsyncSession] = None
        self.lock_rows = False
        self.tasks: Optional[SqlTaskStore] = None
        self.boards: Optional[SqlBoardStore] = None
        self.custom_fields: Optional[SqlCustomFieldStore] = None

    async def __aenter__(self) -> "SqlUnitOfWork":
        if self.session is not None:
            raise RuntimeError("SqlUnitOfWork is already active")
        self.session = self._session_factory()
        # SQLite has no row locks; it serializes writers on its own
        bind = self.session.bind
        lock_rows = bind is not None and bind.dialect.name != "sqlite"
        self.lock_rows = lock_rows
        self.tasks = SqlTaskStore(self.session, lock_rows)
        self.boards = SqlBoardStore(self.session, lock_rows)
        self.custom_fields = SqlCustomFieldStore(self.session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        session = self.session
        try:
            if exc_type is None:
                await session.commit()
            else:
                await session.rollback()
                logger.debug(f"Rolled back unit of work after {exc_type.__name__}")
        except SQLAlchemyError as err:
            await session.rollback()
            logger.error(f"Commit failed: {err}", exc_info=True)
            raise StorageError(str(err)) from err
        finally:
            await session.close()
            self.session = None
            self.tasks = self.boards = self.custom_fields = None
