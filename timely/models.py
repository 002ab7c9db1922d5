import datetime as dt
from typing import Optional

from pydantic import field_validator
from sqlmodel import SQLModel, Field

from .utils import parse_date


class TaskBase(SQLModel):
    name: str
    done: bool = Field(default=False)
    description: Optional[str] = None
    # Parent link is an id lookup key, never an object reference; the flat
    # table is the source of truth and the tree is rebuilt from it.
    parent_id: Optional[int] = Field(default=None, foreign_key="todos.id", index=True)
    date: Optional[dt.date] = Field(default=None, index=True)


class Task(TaskBase, table=True):
    __tablename__ = "todos"

    id: Optional[int] = Field(default=None, primary_key=True)


class TaskRead(TaskBase):
    """Task as exchanged over the API (id always present)."""
    id: int


class TaskCreate(SQLModel):
    name: str
    description: Optional[str] = None
    parent_id: Optional[int] = None
    date: Optional[dt.date] = None

    @field_validator('date', mode='before')
    @classmethod
    def _parse_date(cls, v):
        return parse_date(v)


class TaskUpdate(SQLModel):
    """Partial field edit. Only fields present in the payload are applied."""
    name: Optional[str] = None
    description: Optional[str] = None
    parent_id: Optional[int] = None
    date: Optional[dt.date] = None

    @field_validator('date', mode='before')
    @classmethod
    def _parse_date(cls, v):
        return parse_date(v)

    @field_validator('name')
    @classmethod
    def _name_not_null(cls, v):
        # absent means unchanged; an explicit null would clear a required column
        if v is None:
            raise ValueError('name cannot be null')
        return v
