# models.py — Database models for the kanban core
# - UUID string primary keys
# - Soft deletes on tasks and boards
# - Dense zero-based positions for columns (per board) and tasks (per column)
# - Custom field values stored as JSON keyed by definition id

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, JSON, Boolean, Integer,
    Enum as SQLEnum, ForeignKey, Text, Index,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


# ============================================================
# ENUMS
# ============================================================

class TaskPriority(str, PyEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class CustomFieldType(str, PyEnum):
    NUMBER = "number"
    SELECT = "select"
    MULTI_SELECT = "multi_select"  # select with multiple: true
    DATE = "date"
    TEXT = "text"
    CHECKBOX = "checkbox"


# ============================================================
# KANBAN BOARD
# ============================================================

class Board(Base):
    """Kanban board: an ordered set of columns"""
    __tablename__ = "boards"

    id = Column(String, primary_key=True, default=new_uuid)
    organisation_id = Column(String, nullable=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    columns = relationship("BoardColumn", back_populates="board", order_by="BoardColumn.position")
    custom_fields = relationship(
        "CustomFieldDefinition", back_populates="board", order_by="CustomFieldDefinition.position"
    )


class BoardColumn(Base):
    """Column in a Kanban board, optionally WIP-limited"""
    __tablename__ = "board_columns"

    id = Column(String, primary_key=True, default=new_uuid)
    board_id = Column(String, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    color = Column(String, nullable=False, default="#6B7280")
    position = Column(Integer, nullable=False, default=0)
    wip_limit = Column(Integer, nullable=True)  # NULL = unlimited
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    board = relationship("Board", back_populates="columns")
    tasks = relationship("Task", back_populates="column", order_by="Task.position")

    __table_args__ = (
        Index("idx_col_board_pos", "board_id", "position"),
    )


class Task(Base):
    """Task card; position is its rank inside board_column_id"""
    __tablename__ = "tasks"

    id = Column(String, primary_key=True, default=new_uuid)
    board_column_id = Column(
        String, ForeignKey("board_columns.id", ondelete="CASCADE"), nullable=False, index=True
    )

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    assignee_id = Column(String, nullable=True, index=True)
    priority = Column(SQLEnum(TaskPriority), nullable=False, default=TaskPriority.MEDIUM)
    due_date = Column(DateTime(timezone=True), nullable=True)
    tags = Column(JSON, default=list)
    custom_fields_values = Column(JSON, default=dict)
    position = Column(Integer, nullable=False, default=0)

    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    column = relationship("BoardColumn", back_populates="tasks")

    __table_args__ = (
        Index("idx_task_col_pos", "board_column_id", "position"),
    )


class CustomFieldDefinition(Base):
    """Board-level, runtime-defined typed attribute for tasks"""
    __tablename__ = "custom_field_definitions"

    id = Column(String, primary_key=True, default=new_uuid)
    board_id = Column(String, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    field_type = Column(SQLEnum(CustomFieldType), nullable=False)
    config = Column(JSON, default=dict)  # Type-specific: options, min/max, max_length...
    required = Column(Boolean, nullable=False, default=False)
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    board = relationship("Board", back_populates="custom_fields")

    __table_args__ = (
        Index("idx_cfd_board_pos", "board_id", "position"),
    )
