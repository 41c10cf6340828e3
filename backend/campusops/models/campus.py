"""Campus contracts: buildings, rooms, tickets and events."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from backend.campusops.db.models import TicketStatus


class BuildingCreate(BaseModel):
    name: str = Field(..., min_length=1)
    code: str | None = None


class BuildingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    code: str | None
    created_at: datetime


class RoomCreate(BaseModel):
    name: str = Field(..., min_length=1)
    floor: str | None = None
    capacity: int | None = Field(None, gt=0)


class RoomResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    building_id: uuid.UUID
    name: str
    floor: str | None
    capacity: int | None


class TicketCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str | None = None
    priority: str = "NORMAL"
    room_id: uuid.UUID | None = None
    team_id: uuid.UUID | None = None


class TicketUpdate(BaseModel):
    """Partial update; only fields that are sent are changed."""

    title: str | None = Field(None, min_length=1)
    description: str | None = None
    status: TicketStatus | None = None
    priority: str | None = None
    assigned_to_id: uuid.UUID | None = None

    @field_validator("title", "status", "priority")
    @classmethod
    def _not_null(cls, value: object) -> object:
        # Absent means unchanged; an explicit null would clear a required column
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    description: str | None
    status: str
    priority: str
    room_id: uuid.UUID | None
    team_id: uuid.UUID | None
    created_by_id: uuid.UUID
    assigned_to_id: uuid.UUID | None
    created_at: datetime


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1)
    starts_at: datetime
    ends_at: datetime
    room_id: uuid.UUID | None = None

    @model_validator(mode="after")
    def _ends_after_start(self) -> "EventCreate":
        if self.ends_at <= self.starts_at:
            raise ValueError("ends_at must be after starts_at")
        return self


class EventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    starts_at: datetime
    ends_at: datetime
    room_id: uuid.UUID | None
    created_by_id: uuid.UUID
