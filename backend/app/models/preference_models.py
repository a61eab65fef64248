# backend/app/models/preference_models.py

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


# ----------------------------------------------------------
# CONVERSATION PREFERENCES (replaced wholesale on update)
# ----------------------------------------------------------
class Preferences(BaseModel):
    """
    Travel preferences attached to one conversation.

    Every field is optional; an empty object means "no preferences yet".
    `diet` behaves like a set: duplicates are dropped, first occurrence wins.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    diet: Optional[List[str]] = None                                # ["vegetarian", "halal"]
    travel_mode: Optional[str] = None                               # walking / transit / car ...
    pace: Optional[Literal["relaxed", "balanced", "aggressive"]] = None
    budget_level: Optional[Literal["low", "mid", "high"]] = None
    miscellaneous: Optional[str] = None

    @field_validator("diet")
    @classmethod
    def _dedupe_diet(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        seen = []
        for entry in v:
            if entry not in seen:
                seen.append(entry)
        return seen

    def to_storage(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
