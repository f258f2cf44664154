"""Normalized calendar records handed to the encoder."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# (year, month, day, hour, minute) in local wall-clock time
DateTimeTuple = tuple[int, int, int, int, int]

LESSONS_UID_DOMAIN = "lessons.librus"
EVENTS_UID_DOMAIN = "events.librus"


class EventRecord(BaseModel):
    """One calendar entry, source-agnostic.

    ``uid`` must be unique across every record of a document: lesson uids end
    in ``@lessons.librus`` and homework uids in ``@events.librus`` so the two
    feeds can never collide.
    """

    uid: str = Field(..., min_length=1, description="Globally unique id (source+key+time)")
    title: str = Field(..., description="Summary line shown in calendar clients")
    description: str = Field(default="", description="Free-text body")
    start: DateTimeTuple = Field(..., description="Local start as (y, m, d, h, min)")
    end: DateTimeTuple = Field(..., description="Local end as (y, m, d, h, min)")

    model_config = ConfigDict(frozen=True)

    @field_validator("title", "description", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Optional[str]) -> str:
        return "" if value is None else value

    def start_datetime(self) -> datetime:
        """Naive local start; raises ValueError for impossible dates."""
        return datetime(*self.start)

    def end_datetime(self) -> datetime:
        """Naive local end; raises ValueError for impossible dates."""
        return datetime(*self.end)
