# backend/app/models/itinerary_models.py

from datetime import date as calendar_date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ItineraryLocation(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: Optional[str] = None
    address: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None


class ItineraryItem(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(min_length=1)
    title: str
    time_range: Optional[str] = None
    location: Optional[ItineraryLocation] = None
    notes: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be empty")
        return v


class Day(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    date: str                       # ISO calendar date, YYYY-MM-DD
    items: List[ItineraryItem] = Field(default_factory=list)

    @field_validator("date")
    @classmethod
    def _iso_date(cls, v: str) -> str:
        try:
            return calendar_date.fromisoformat(v.strip()).isoformat()
        except ValueError:
            raise ValueError(f"date must be an ISO calendar date (YYYY-MM-DD), got {v!r}")


class Itinerary(BaseModel):
    days: List[Day] = Field(default_factory=list)

    def to_storage(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
