# tests/conftest.py — Shared test fixtures
import copy
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from database import build_engine, build_session_factory, init_db, close_db
from errors import StorageError
from models import CustomFieldType
from schemas import BoardRecord, ColumnRecord, FieldDefinition, PositionUpdate, TaskRecord
from sql_stores import SqlUnitOfWork


# ============================================================
# IN-MEMORY UNIT OF WORK
# ============================================================

class InMemoryTaskStore:
    def __init__(self, uow: "InMemoryUnitOfWork"):
        self.uow = uow

    async def get_by_id(self, task_id: str) -> Optional[TaskRecord]:
        self.uow.record("tasks.get_by_id", task_id)
        task = self.uow.state["tasks"].get(task_id)
        if task is None or task.deleted_at is not None:
            return None
        return task.model_copy(deep=True)

    async def get_by_column_id(self, column_id: str) -> List[TaskRecord]:
        self.uow.record("tasks.get_by_column_id", column_id)
        rows = [
            t for t in self.uow.state["tasks"].values()
            if t.board_column_id == column_id and t.deleted_at is None
        ]
        return [t.model_copy(deep=True) for t in sorted(rows, key=lambda t: t.position)]

    async def create(self, data: Dict[str, Any]) -> TaskRecord:
        self.uow.record("tasks.create", data)
        self.uow.next_id += 1
        task = TaskRecord(id=data.get("id") or f"task-new-{self.uow.next_id}", **{
            k: v for k, v in data.items() if k != "id"
        })
        self.uow.state["tasks"][task.id] = task
        return task.model_copy(deep=True)

    async def update(self, task_id: str, patch: Dict[str, Any]) -> TaskRecord:
        self.uow.record("tasks.update", task_id, patch)
        task = self.uow.state["tasks"][task_id].model_copy(update=patch, deep=True)
        self.uow.state["tasks"][task_id] = task
        return task.model_copy(deep=True)

    async def batch_update(self, updates: List[PositionUpdate]) -> None:
        self.uow.record("tasks.batch_update", list(updates))
        for row in updates:
            change = {"position": row.position}
            if row.board_column_id is not None:
                change["board_column_id"] = row.board_column_id
            tasks = self.uow.state["tasks"]
            tasks[row.id] = tasks[row.id].model_copy(update=change)

    async def delete(self, task_id: str, soft: bool = True) -> None:
        self.uow.record("tasks.delete", task_id, soft)
        if soft:
            task = self.uow.state["tasks"][task_id]
            self.uow.state["tasks"][task_id] = task.model_copy(update={"deleted_at": datetime.now(timezone.utc)})
        else:
            del self.uow.state["tasks"][task_id]


class InMemoryBoardStore:
    def __init__(self, uow: "InMemoryUnitOfWork"):
        self.uow = uow

    async def get_column_by_id(self, column_id: str) -> Optional[ColumnRecord]:
        self.uow.record("boards.get_column_by_id", column_id)
        column = self.uow.state["columns"].get(column_id)
        return column.model_copy() if column else None

    async def get_by_id(self, board_id: str, include_columns: bool = False) -> Optional[BoardRecord]:
        self.uow.record("boards.get_by_id", board_id, include_columns)
        board = self.uow.state["boards"].get(board_id)
        if board is None:
            return None
        columns = []
        if include_columns:
            columns = sorted(
                (c for c in self.uow.state["columns"].values() if c.board_id == board_id),
                key=lambda c: c.position,
            )
        return board.model_copy(update={"columns": [c.model_copy() for c in columns]})

    async def create_column(self, data: Dict[str, Any]) -> ColumnRecord:
        self.uow.record("boards.create_column", data)
        self.uow.next_id += 1
        column = ColumnRecord(id=data.get("id") or f"col-new-{self.uow.next_id}", **{
            k: v for k, v in data.items() if k != "id"
        })
        self.uow.state["columns"][column.id] = column
        return column.model_copy()

    async def update_column(self, column_id: str, patch: Dict[str, Any]) -> ColumnRecord:
        self.uow.record("boards.update_column", column_id, patch)
        column = self.uow.state["columns"][column_id].model_copy(update=patch)
        self.uow.state["columns"][column_id] = column
        return column.model_copy()

    async def delete_column(self, column_id: str) -> None:
        self.uow.record("boards.delete_column", column_id)
        del self.uow.state["columns"][column_id]

    async def batch_update_columns(self, updates: List[PositionUpdate]) -> None:
        self.uow.record("boards.batch_update_columns", list(updates))
        columns = self.uow.state["columns"]
        for row in updates:
            columns[row.id] = columns[row.id].model_copy(update={"position": row.position})


class InMemoryCustomFieldStore:
    def __init__(self, uow: "InMemoryUnitOfWork"):
        self.uow = uow

    async def get_by_board_id(self, board_id: str) -> List[FieldDefinition]:
        self.uow.record("custom_fields.get_by_board_id", board_id)
        return sorted(
            (d for d in self.uow.state["fields"] if d.board_id == board_id),
            key=lambda d: d.position,
        )


class InMemoryUnitOfWork:
    """Dict-backed stores with a call log, failure injection and snapshot rollback.

    ``fail_on`` holds call names (e.g. ``"tasks.batch_update"``) that raise
    StorageError instead of running.
    """

    def __init__(self):
        self.state: Dict[str, Any] = {"boards": {}, "columns": {}, "tasks": {}, "fields": []}
        self.calls: List[tuple] = []
        self.fail_on: set = set()
        self.commits = 0
        self.rollbacks = 0
        self.next_id = 0
        self._snapshot = None
        self.tasks = InMemoryTaskStore(self)
        self.boards = InMemoryBoardStore(self)
        self.custom_fields = InMemoryCustomFieldStore(self)

    def record(self, name: str, *args):
        self.calls.append((name, args))
        if name in self.fail_on:
            raise StorageError(f"connection reset during {name}")

    def called(self, name: str) -> List[tuple]:
        return [args for call, args in self.calls if call == name]

    @property
    def writes(self) -> List[str]:
        write_calls = {
            "tasks.create", "tasks.update", "tasks.batch_update", "tasks.delete",
            "boards.create_column", "boards.update_column", "boards.delete_column",
            "boards.batch_update_columns",
        }
        return [name for name, _ in self.calls if name in write_calls]

    async def __aenter__(self):
        self._snapshot = copy.deepcopy(self.state)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.commits += 1
        else:
            self.state = self._snapshot
            self.rollbacks += 1
        self._snapshot = None


# ============================================================
# SEEDING HELPERS
# ============================================================

def add_board(uow: InMemoryUnitOfWork, board_id: str = "board-1", name: str = "Sprint Board"):
    uow.state["boards"][board_id] = BoardRecord(id=board_id, name=name)
    return board_id


def add_column(
    uow: InMemoryUnitOfWork,
    column_id: str,
    board_id: str = "board-1",
    name: Optional[str] = None,
    wip_limit: Optional[int] = None,
    position: Optional[int] = None,
):
    if board_id not in uow.state["boards"]:
        add_board(uow, board_id)
    if position is None:
        position = len([c for c in uow.state["columns"].values() if c.board_id == board_id])
    uow.state["columns"][column_id] = ColumnRecord(
        id=column_id, board_id=board_id, name=name or column_id,
        wip_limit=wip_limit, position=position,
    )
    return column_id


def add_tasks(uow: InMemoryUnitOfWork, column_id: str, task_ids: List[str], **fields):
    """Append tasks to a column with dense positions."""
    start = len([
        t for t in uow.state["tasks"].values()
        if t.board_column_id == column_id and t.deleted_at is None
    ])
    for offset, task_id in enumerate(task_ids):
        uow.state["tasks"][task_id] = TaskRecord(
            id=task_id, board_column_id=column_id, title=f"Task {task_id}",
            position=start + offset, **fields,
        )
    return task_ids


def add_field(
    uow: InMemoryUnitOfWork,
    field_id: str,
    field_type: CustomFieldType,
    board_id: str = "board-1",
    name: Optional[str] = None,
    required: bool = False,
    config: Optional[Dict[str, Any]] = None,
):
    uow.state["fields"].append(FieldDefinition(
        id=field_id, board_id=board_id, name=name or field_id, field_type=field_type,
        required=required, config=config or {}, position=len(uow.state["fields"]),
    ))
    return field_id


def column_order(uow: InMemoryUnitOfWork, column_id: str) -> List[str]:
    """Task ids of a column ordered by position."""
    rows = [
        t for t in uow.state["tasks"].values()
        if t.board_column_id == column_id and t.deleted_at is None
    ]
    return [t.id for t in sorted(rows, key=lambda t: t.position)]


def column_positions(uow: InMemoryUnitOfWork, column_id: str) -> List[int]:
    return sorted(
        t.position for t in uow.state["tasks"].values()
        if t.board_column_id == column_id and t.deleted_at is None
    )


@pytest.fixture
def uow():
    return InMemoryUnitOfWork()


# ============================================================
# SQLALCHEMY ADAPTER
# ============================================================

@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'kanban_test.db'}", echo=False)
    await init_db(engine)
    yield engine
    await close_db(engine)


@pytest_asyncio.fixture(scope="function")
async def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest_asyncio.fixture(scope="function")
async def sql_uow(session_factory):
    return SqlUnitOfWork(session_factory)
