# tasks.py — Task orchestration: create, update, delete and read tasks
"""
Each operation validates its payload before opening the unit of work, then
runs its reads, checks and writes inside one transaction. Store failures are
logged with their original text and surfaced as a generic retriable error.
"""

import logging
from typing import Any, Dict, List, Union

from custom_fields import merge_custom_field_values, validate_task_custom_fields
from errors import (
    ColumnNotFound, KanbanError, StorageError, TaskCreateFailed, TaskDeleteFailed,
    TaskLoadFailed, TaskNotFound, TaskUpdateFailed, WipLimitExceeded,
)
from positions import clamp_position, close_gap, shift_for_insert
from schemas import TaskCreate, TaskRecord, TaskUpdate, check_identifier, parse_payload
from stores import UnitOfWork

logger = logging.getLogger("kanban.tasks")


# ============================================================
# CREATE
# ============================================================

async def create_task(data: Union[TaskCreate, Dict[str, Any]], uow: UnitOfWork) -> TaskRecord:
    """Create a task at the end of its column, or at ``data.position`` when given.

    Custom field values are validated against the board's definitions as if
    the task had no stored values, so every required field must be present.
    """
    payload = parse_payload(TaskCreate, data)
    check_identifier(payload.board_column_id, "column")

    try:
        async with uow:
            return await _run_create(payload, uow)
    except KanbanError:
        raise
    except StorageError as exc:
        logger.error(f"Create task in column {payload.board_column_id} failed: {exc}", exc_info=True)
        raise TaskCreateFailed() from exc


async def _run_create(payload: TaskCreate, uow: UnitOfWork) -> TaskRecord:
    column = await uow.boards.get_column_by_id(payload.board_column_id)
    if column is None:
        raise ColumnNotFound(payload.board_column_id)

    custom_values = await validate_task_custom_fields(
        uow.custom_fields,
        column.board_id,
        merge_custom_field_values({}, payload.custom_fields_values),
    )

    siblings = await uow.tasks.get_by_column_id(column.id)
    if column.wip_limit is not None and len(siblings) + 1 > column.wip_limit:
        logger.info(f"WIP limit {column.wip_limit} reached in column '{column.name}'; rejected new task")
        raise WipLimitExceeded(column.id, column.name, column.wip_limit)

    if payload.position is None:
        position = len(siblings)
    else:
        position = clamp_position(payload.position, len(siblings))
    shifts = shift_for_insert(siblings, position)

    record = payload.model_dump(exclude={"position"})
    record.update(custom_fields_values=custom_values, position=position)
    task = await uow.tasks.create(record)

    if shifts:
        await uow.tasks.batch_update(shifts)

    logger.info(f"Created task {task.id} in column {column.id}@{position}")
    return task


# ============================================================
# UPDATE
# ============================================================

async def update_task(
    task_id: str, patch: Union[TaskUpdate, Dict[str, Any]], uow: UnitOfWork
) -> TaskRecord:
    """Apply a partial update. Only the fields present in ``patch`` are written.

    ``custom_fields_values`` in the patch is merged over the stored values and
    the merged map is validated; a key set to None clears that field.
    Column and position changes go through ``task_move.move_task``.
    """
    check_identifier(task_id, "task")
    payload = parse_payload(TaskUpdate, patch)
    changes = payload.model_dump(exclude_unset=True)

    try:
        async with uow:
            task = await uow.tasks.get_by_id(task_id)
            if task is None:
                raise TaskNotFound(task_id)

            if "custom_fields_values" in changes:
                changes["custom_fields_values"] = await _merged_custom_fields(
                    task, changes["custom_fields_values"] or {}, uow
                )

            if not changes:
                return task

            updated = await uow.tasks.update(task.id, changes)
            logger.info(f"Updated task {task.id}: {', '.join(sorted(changes))}")
            return updated
    except KanbanError:
        raise
    except StorageError as exc:
        logger.error(f"Update of task {task_id} failed: {exc}", exc_info=True)
        raise TaskUpdateFailed() from exc


async def _merged_custom_fields(
    task: TaskRecord, incoming: Dict[str, Any], uow: UnitOfWork
) -> Dict[str, Any]:
    column = await uow.boards.get_column_by_id(task.board_column_id)
    if column is None:
        raise ColumnNotFound(task.board_column_id)

    merged = merge_custom_field_values(task.custom_fields_values, incoming)
    carried_over = set(task.custom_fields_values) - set(incoming)
    return await validate_task_custom_fields(
        uow.custom_fields, column.board_id, merged, stored_keys=carried_over
    )


# ============================================================
# DELETE
# ============================================================

async def delete_task(task_id: str, uow: UnitOfWork, soft: bool = True) -> None:
    """Delete a task and close the gap it leaves in its column."""
    check_identifier(task_id, "task")

    try:
        async with uow:
            task = await uow.tasks.get_by_id(task_id)
            if task is None:
                raise TaskNotFound(task_id)

            siblings = await uow.tasks.get_by_column_id(task.board_column_id)
            await uow.tasks.delete(task.id, soft=soft)

            shifts = close_gap(siblings, task.position, exclude_id=task.id)
            if shifts:
                await uow.tasks.batch_update(shifts)
    except KanbanError:
        raise
    except StorageError as exc:
        logger.error(f"Delete of task {task_id} failed: {exc}", exc_info=True)
        raise TaskDeleteFailed() from exc

    logger.info(f"{'Soft-deleted' if soft else 'Deleted'} task {task_id} ({len(shifts)} shifted)")


# ============================================================
# READ
# ============================================================

async def get_task(task_id: str, uow: UnitOfWork) -> TaskRecord:
    check_identifier(task_id, "task")
    try:
        async with uow:
            task = await uow.tasks.get_by_id(task_id)
    except StorageError as exc:
        logger.error(f"Load of task {task_id} failed: {exc}", exc_info=True)
        raise TaskLoadFailed() from exc
    if task is None:
        raise TaskNotFound(task_id)
    return task


async def list_column_tasks(column_id: str, uow: UnitOfWork) -> List[TaskRecord]:
    """Return the column's tasks ordered by position."""
    check_identifier(column_id, "column")
    try:
        async with uow:
            column = await uow.boards.get_column_by_id(column_id)
            if column is None:
                raise ColumnNotFound(column_id)
            return await uow.tasks.get_by_column_id(column.id)
    except KanbanError:
        raise
    except StorageError as exc:
        logger.error(f"Load of column {column_id} tasks failed: {exc}", exc_info=True)
        raise TaskLoadFailed() from exc
