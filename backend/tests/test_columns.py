# tests/test_columns.py — Column management
import pytest

from columns import create_column, delete_column, reorder_columns, update_column
from errors import (
    BoardNotFound, ColumnNotFound, ColumnOperationFailed, ValidationFailed, WipLimitExceeded,
)

from tests.conftest import add_board, add_column, add_tasks, column_order


def _column_positions(uow, board_id="board-1"):
    columns = [c for c in uow.state["columns"].values() if c.board_id == board_id]
    return [c.id for c in sorted(columns, key=lambda c: c.position)]


@pytest.mark.asyncio
async def test_create_column_appends(uow):
    add_column(uow, "col-todo")
    add_column(uow, "col-done")

    column = await create_column({"board_id": "board-1", "name": " Review ", "wip_limit": 4}, uow)

    assert column.name == "Review"
    assert column.position == 2
    assert column.color == "#6B7280"
    assert column.wip_limit == 4


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    {"board_id": "board-1", "name": ""},
    {"board_id": "board-1", "name": "x" * 51},
    {"board_id": "board-1", "name": "Doing", "color": "red"},
    {"board_id": "board-1", "name": "Doing", "wip_limit": 0},
])
async def test_create_column_rejects_bad_payload(uow, payload):
    add_board(uow)
    with pytest.raises(ValidationFailed):
        await create_column(payload, uow)


@pytest.mark.asyncio
async def test_create_column_unknown_board(uow):
    with pytest.raises(BoardNotFound):
        await create_column({"board_id": "board-ghost", "name": "Doing"}, uow)


@pytest.mark.asyncio
async def test_update_column_partial(uow):
    add_column(uow, "col-doing", name="Doing", wip_limit=3)

    column = await update_column("col-doing", {"color": "#FF0000"}, uow)

    assert column.color == "#FF0000"
    assert column.name == "Doing"
    assert column.wip_limit == 3


@pytest.mark.asyncio
async def test_update_column_rejects_limit_below_count(uow):
    add_column(uow, "col-doing", name="Doing")
    add_tasks(uow, "col-doing", ["task-1", "task-2", "task-3"])

    with pytest.raises(WipLimitExceeded) as exc:
        await update_column("col-doing", {"wip_limit": 2}, uow)
    assert exc.value.limit == 2
    assert uow.writes == []


@pytest.mark.asyncio
async def test_update_column_removes_limit(uow):
    add_column(uow, "col-doing", wip_limit=2)

    column = await update_column("col-doing", {"wip_limit": None}, uow)

    assert column.wip_limit is None


@pytest.mark.asyncio
async def test_update_missing_column(uow):
    with pytest.raises(ColumnNotFound):
        await update_column("col-ghost", {"name": "x"}, uow)


@pytest.mark.asyncio
async def test_delete_empty_column_renumbers_rest(uow):
    add_column(uow, "col-a")
    add_column(uow, "col-b")
    add_column(uow, "col-c")

    await delete_column("col-a", uow)

    assert _column_positions(uow) == ["col-b", "col-c"]
    assert uow.state["columns"]["col-b"].position == 0
    assert uow.state["columns"]["col-c"].position == 1


@pytest.mark.asyncio
async def test_delete_column_with_tasks_requires_destination(uow):
    add_column(uow, "col-a")
    add_tasks(uow, "col-a", ["task-1"])

    with pytest.raises(ValidationFailed) as exc:
        await delete_column("col-a", uow)
    assert exc.value.field == "move_tasks_to"
    assert "col-a" in uow.state["columns"]


@pytest.mark.asyncio
async def test_delete_column_moves_tasks_to_end_of_destination(uow):
    add_column(uow, "col-a")
    add_column(uow, "col-b")
    add_tasks(uow, "col-a", ["task-1", "task-2"])
    add_tasks(uow, "col-b", ["task-3"])

    await delete_column("col-a", uow, move_tasks_to="col-b")

    assert column_order(uow, "col-b") == ["task-3", "task-1", "task-2"]
    assert "col-a" not in uow.state["columns"]
    assert uow.state["columns"]["col-b"].position == 0


@pytest.mark.asyncio
async def test_delete_column_destination_on_other_board(uow):
    add_column(uow, "col-a")
    add_column(uow, "col-x", board_id="board-2")
    add_tasks(uow, "col-a", ["task-1"])

    with pytest.raises(ValidationFailed):
        await delete_column("col-a", uow, move_tasks_to="col-x")


@pytest.mark.asyncio
async def test_delete_column_destination_wip_limit(uow):
    add_column(uow, "col-a")
    add_column(uow, "col-b", wip_limit=2)
    add_tasks(uow, "col-a", ["task-1", "task-2"])
    add_tasks(uow, "col-b", ["task-3"])

    with pytest.raises(WipLimitExceeded):
        await delete_column("col-a", uow, move_tasks_to="col-b")
    assert column_order(uow, "col-a") == ["task-1", "task-2"]


@pytest.mark.asyncio
async def test_reorder_columns(uow):
    add_column(uow, "col-a")
    add_column(uow, "col-b")
    add_column(uow, "col-c")

    result = await reorder_columns("board-1", ["col-c", "col-a", "col-b"], uow)

    assert [(c.id, c.position) for c in result] == [("col-c", 0), ("col-a", 1), ("col-b", 2)]
    assert _column_positions(uow) == ["col-c", "col-a", "col-b"]


@pytest.mark.asyncio
@pytest.mark.parametrize("order", [
    ["col-a", "col-b"],
    ["col-a", "col-b", "col-b"],
    ["col-a", "col-b", "col-z"],
])
async def test_reorder_columns_requires_permutation(uow, order):
    add_column(uow, "col-a")
    add_column(uow, "col-b")
    add_column(uow, "col-c")

    with pytest.raises(ValidationFailed):
        await reorder_columns("board-1", order, uow)
    assert uow.writes == []


@pytest.mark.asyncio
async def test_column_storage_failure(uow):
    add_column(uow, "col-a")
    uow.fail_on.add("boards.update_column")

    with pytest.raises(ColumnOperationFailed):
        await update_column("col-a", {"name": "Renamed"}, uow)
    assert uow.state["columns"]["col-a"].name == "col-a"
