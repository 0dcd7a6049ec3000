# columns.py — Board column management: create, update, delete, reorder
import logging
from typing import Any, Dict, List, Optional, Union

from errors import (
    BoardNotFound, ColumnNotFound, ColumnOperationFailed, KanbanError, StorageError,
    ValidationFailed, WipLimitExceeded,
)
from positions import renumber
from schemas import ColumnCreate, ColumnRecord, ColumnUpdate, check_identifier, parse_payload
from stores import UnitOfWork

logger = logging.getLogger("kanban.columns")


async def create_column(data: Union[ColumnCreate, Dict[str, Any]], uow: UnitOfWork) -> ColumnRecord:
    """Append a column to the end of its board."""
    payload = parse_payload(ColumnCreate, data)
    check_identifier(payload.board_id, "board")

    try:
        async with uow:
            board = await uow.boards.get_by_id(payload.board_id, include_columns=True)
            if board is None:
                raise BoardNotFound(payload.board_id)

            record = payload.model_dump()
            record["position"] = len(board.columns)
            column = await uow.boards.create_column(record)
    except KanbanError:
        raise
    except StorageError as exc:
        logger.error(f"Create column on board {payload.board_id} failed: {exc}", exc_info=True)
        raise ColumnOperationFailed() from exc

    logger.info(f"Created column '{column.name}' ({column.id}) on board {column.board_id}@{column.position}")
    return column


async def update_column(
    column_id: str, patch: Union[ColumnUpdate, Dict[str, Any]], uow: UnitOfWork
) -> ColumnRecord:
    """Partial update of name, color or WIP limit.

    A WIP limit below the column's current task count is rejected; an
    explicit None removes the limit.
    """
    check_identifier(column_id, "column")
    payload = parse_payload(ColumnUpdate, patch)
    changes = payload.model_dump(exclude_unset=True)

    try:
        async with uow:
            column = await uow.boards.get_column_by_id(column_id)
            if column is None:
                raise ColumnNotFound(column_id)

            new_limit = changes.get("wip_limit")
            if new_limit is not None:
                count = len(await uow.tasks.get_by_column_id(column.id))
                if count > new_limit:
                    raise WipLimitExceeded(column.id, changes.get("name", column.name), new_limit)

            if not changes:
                return column
            updated = await uow.boards.update_column(column.id, changes)
    except KanbanError:
        raise
    except StorageError as exc:
        logger.error(f"Update of column {column_id} failed: {exc}", exc_info=True)
        raise ColumnOperationFailed() from exc

    logger.info(f"Updated column {column_id}: {', '.join(sorted(changes))}")
    return updated


async def delete_column(column_id: str, uow: UnitOfWork, move_tasks_to: Optional[str] = None) -> None:
    """Delete a column and renumber the board's remaining columns.

    A column that still holds tasks is only deleted when ``move_tasks_to``
    names another column of the same board; the tasks are appended there
    in their current order.
    """
    check_identifier(column_id, "column")
    if move_tasks_to is not None:
        check_identifier(move_tasks_to, "column")

    try:
        async with uow:
            column = await uow.boards.get_column_by_id(column_id)
            if column is None:
                raise ColumnNotFound(column_id)

            tasks = await uow.tasks.get_by_column_id(column.id)
            if tasks:
                await _relocate_tasks(column, tasks, move_tasks_to, uow)

            await uow.boards.delete_column(column.id)

            board = await uow.boards.get_by_id(column.board_id, include_columns=True)
            remaining = sorted(
                (c for c in (board.columns if board else []) if c.id != column.id),
                key=lambda c: c.position,
            )
            shifts = renumber(remaining)
            if shifts:
                await uow.boards.batch_update_columns(shifts)
    except KanbanError:
        raise
    except StorageError as exc:
        logger.error(f"Delete of column {column_id} failed: {exc}", exc_info=True)
        raise ColumnOperationFailed() from exc

    logger.info(f"Deleted column {column_id} from board {column.board_id}")


async def _relocate_tasks(column: ColumnRecord, tasks, move_tasks_to: Optional[str], uow: UnitOfWork) -> None:
    if move_tasks_to is None:
        raise ValidationFailed(
            f"column still holds {len(tasks)} tasks; choose a column to move them to",
            field="move_tasks_to",
        )
    if move_tasks_to == column.id:
        raise ValidationFailed("cannot move tasks into the column being deleted", field="move_tasks_to")

    target = await uow.boards.get_column_by_id(move_tasks_to)
    if target is None:
        raise ColumnNotFound(move_tasks_to)
    if target.board_id != column.board_id:
        raise ValidationFailed("target column belongs to another board", field="move_tasks_to")

    target_tasks = await uow.tasks.get_by_column_id(target.id)
    if target.wip_limit is not None and len(target_tasks) + len(tasks) > target.wip_limit:
        raise WipLimitExceeded(target.id, target.name, target.wip_limit)

    await uow.tasks.batch_update(renumber(tasks, column_id=target.id, offset=len(target_tasks)))
    logger.info(f"Moved {len(tasks)} tasks from column {column.id} to {target.id}")


async def reorder_columns(board_id: str, order: List[str], uow: UnitOfWork) -> List[ColumnRecord]:
    """Renumber the board's columns to follow ``order``, which must list every column once."""
    check_identifier(board_id, "board")
    for column_id in order:
        check_identifier(column_id, "column")

    try:
        async with uow:
            board = await uow.boards.get_by_id(board_id, include_columns=True)
            if board is None:
                raise BoardNotFound(board_id)

            by_id = {c.id: c for c in board.columns}
            if len(order) != len(set(order)) or set(order) != set(by_id):
                raise ValidationFailed("order must list every column of the board exactly once", field="order")

            ordered = [by_id[column_id] for column_id in order]
            shifts = renumber(ordered)
            if shifts:
                await uow.boards.batch_update_columns(shifts)
    except KanbanError:
        raise
    except StorageError as exc:
        logger.error(f"Reorder of columns on board {board_id} failed: {exc}", exc_info=True)
        raise ColumnOperationFailed() from exc

    logger.info(f"Reordered {len(ordered)} columns on board {board_id} ({len(shifts)} moved)")
    return [c.model_copy(update={"position": index}) for index, c in enumerate(ordered)]
