from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# SQLite stores integers as signed 64-bit values
MIN_ORDER_KEY = -(2**63)
MAX_ORDER_KEY = 2**63 - 1

# Two bound parameters per item must stay under the SQLite variable limit (32766)
MAX_REORDER_ITEMS = 5000


# PUBLIC_INTERFACE
class TodoCreate(BaseModel):
    """
    Schema for creating a new Todo item.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "content": {"type": "doc", "text": "Buy groceries"},
            }
        }
    )

    content: Any = Field(..., description="Arbitrary JSON document describing the todo")


# PUBLIC_INTERFACE
class TodoContentUpdate(BaseModel):
    """
    Schema for replacing the content of an active Todo item.
    """

    content: Any = Field(..., description="Arbitrary JSON document describing the todo")


# PUBLIC_INTERFACE
class TodoDoneUpdate(BaseModel):
    """
    Schema for toggling the completion flag of an active Todo item.
    """

    done: bool = Field(..., description="Completion status flag")


# PUBLIC_INTERFACE
class TodoOrderKey(BaseModel):
    """
    A single (id, rank) assignment inside a reorder request.
    """

    id: str = Field(..., min_length=1, description="Identifier of the todo to re-rank")
    order_key: int = Field(
        ..., ge=MIN_ORDER_KEY, le=MAX_ORDER_KEY, description="New rank; higher ranks are listed first"
    )


# PUBLIC_INTERFACE
class TodoReorder(BaseModel):
    """
    Schema for a bulk reorder request.
    Ids and ranks must both be unique within one request.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "items": [
                    {"id": "9f1c0e4a7b6d4a55a0c2d1e3f4a5b6c7", "order_key": 3},
                    {"id": "0a1b2c3d4e5f60718293a4b5c6d7e8f9", "order_key": 2},
                ]
            }
        }
    )

    items: List[TodoOrderKey] = Field(
        default_factory=list,
        max_length=MAX_REORDER_ITEMS,
        description="New rank for each listed todo",
    )

    @field_validator("items")
    @classmethod
    def validate_unique(cls, v: List[TodoOrderKey]) -> List[TodoOrderKey]:
        """
        Reject requests that list the same id or the same rank twice.
        """
        ids = [item.id for item in v]
        if len(set(ids)) != len(ids):
            raise ValueError("each todo id may appear only once")
        ranks = [item.order_key for item in v]
        if len(set(ranks)) != len(ranks):
            raise ValueError("each order_key may appear only once")
        return v


# PUBLIC_INTERFACE
class TodoOut(BaseModel):
    """
    Schema returned by the API for a Todo item.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "9f1c0e4a7b6d4a55a0c2d1e3f4a5b6c7",
                "user_id": "user-1",
                "content": {"type": "doc", "text": "Buy groceries"},
                "done": False,
                "order_key": 3,
                "is_removed": False,
                "created_dt": "2025-01-25T10:15:30.123456+00:00",
                "updated_dt": None,
                "removed_dt": None,
            }
        }
    )

    id: str = Field(..., description="Unique identifier of the todo item")
    user_id: str = Field(..., description="Owner of the todo item")
    content: Any = Field(default=None, description="Arbitrary JSON document describing the todo")
    done: bool = Field(..., description="Completion status flag")
    order_key: int = Field(..., description="Rank among the owner's active todos")
    is_removed: bool = Field(..., description="True while the todo is in the trash")
    created_dt: datetime = Field(..., description="Creation timestamp")
    updated_dt: Optional[datetime] = Field(default=None, description="Last content/done update timestamp")
    removed_dt: Optional[datetime] = Field(default=None, description="Time the todo was moved to the trash")
