# task_move.py — Move engine: WIP admission control + dense position maintenance
"""
Moving a task runs, in this order:

1. load the target column (ColumnNotFound before the task is ever read)
2. WIP admission: projected occupancy is the current count for a move
   inside the column, count + 1 otherwise; over the limit raises
   WipLimitExceeded with nothing written
3. load the task
4. write the task's new column and position
5-7. compute the shifts that keep both columns dense
8. write every shift in a single batch call

The whole sequence runs inside the caller's unit of work, so a failing
batch also rolls back step 4.
"""

import logging
from typing import Any, Dict, List, Union

from errors import (
    ColumnNotFound, InvalidPosition, KanbanError, MoveFailed, PositionUpdateFailed,
    StorageError, TaskNotFound, ValidationFailed, WipLimitExceeded,
)
from positions import clamp_position, close_gap, reorder_within, shift_for_insert
from schemas import MoveRequest, PositionUpdate, TaskRecord, check_identifier, parse_payload
from stores import UnitOfWork

logger = logging.getLogger("kanban.move")


async def move_task(request: Union[MoveRequest, Dict[str, Any]], uow: UnitOfWork) -> TaskRecord:
    """Move a task to ``target_position`` of ``target_column_id``.

    Raises InvalidIdentifier, InvalidPosition, ColumnNotFound, WipLimitExceeded,
    TaskNotFound or ValidationFailed for bad requests; MoveFailed or
    PositionUpdateFailed when the store fails.
    """
    request = parse_payload(MoveRequest, request)
    check_identifier(request.task_id, "task")
    check_identifier(request.source_column_id, "column")
    check_identifier(request.target_column_id, "column")
    if request.target_position < 0:
        raise InvalidPosition(request.target_position)

    try:
        async with uow:
            return await _run_move(request, uow)
    except KanbanError:
        raise
    except StorageError as exc:
        logger.error(f"Move of task {request.task_id} failed: {exc}", exc_info=True)
        raise MoveFailed() from exc


async def _run_move(request: MoveRequest, uow: UnitOfWork) -> TaskRecord:
    same_column = request.source_column_id == request.target_column_id

    # 1. Target column first: an invalid target never costs a task read
    target_column = await uow.boards.get_column_by_id(request.target_column_id)
    if target_column is None:
        raise ColumnNotFound(request.target_column_id)

    # 2. WIP admission control, strictly before any mutation
    target_tasks = None
    if target_column.wip_limit is not None:
        target_tasks = await uow.tasks.get_by_column_id(target_column.id)
        projected = len(target_tasks) if same_column else len(target_tasks) + 1
        if projected > target_column.wip_limit:
            logger.info(
                f"WIP limit {target_column.wip_limit} reached in column "
                f"'{target_column.name}'; rejected move of task {request.task_id}"
            )
            raise WipLimitExceeded(target_column.id, target_column.name, target_column.wip_limit)

    # 3. The task itself
    task = await uow.tasks.get_by_id(request.task_id)
    if task is None:
        raise TaskNotFound(request.task_id)
    if task.board_column_id != request.source_column_id:
        raise ValidationFailed(
            f"task {task.id} is in column {task.board_column_id}, not {request.source_column_id}",
            field="source_column_id",
        )

    if target_tasks is None:
        target_tasks = await uow.tasks.get_by_column_id(target_column.id)
    others_in_target = [t for t in target_tasks if t.id != task.id]
    position = clamp_position(request.target_position, len(others_in_target))
    if position != request.target_position:
        logger.debug(f"Clamped target position {request.target_position} -> {position}")

    # 5-7. Shifts for the affected columns
    updates: List[PositionUpdate]
    if same_column:
        updates = reorder_within(target_tasks, task.id, task.position, position)
    else:
        source_tasks = await uow.tasks.get_by_column_id(request.source_column_id)
        updates = shift_for_insert(others_in_target, position)
        updates += close_gap(source_tasks, task.position, exclude_id=task.id)

    # 4. Primary move
    moved = await uow.tasks.update(
        task.id, {"board_column_id": target_column.id, "position": position}
    )

    # 8. One batch for every displaced task
    if updates:
        try:
            await uow.tasks.batch_update(updates)
        except StorageError as exc:
            logger.error(
                f"Position update for {len(updates)} tasks failed while moving {task.id}: {exc}",
                exc_info=True,
            )
            raise PositionUpdateFailed() from exc

    logger.info(
        f"Moved task {task.id} from {task.board_column_id}@{task.position} "
        f"to {target_column.id}@{position} ({len(updates)} shifted)"
    )
    return moved
