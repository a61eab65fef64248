# backend/app/models/conversation_models.py

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.models.itinerary_models import Itinerary
from app.models.preference_models import Preferences


class ConversationMeta(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str
    created_at: int     # epoch ms
    updated_at: int     # epoch ms


class ConversationData(ConversationMeta):
    itinerary: Itinerary = Field(default_factory=Itinerary)
    preferences: Preferences = Field(default_factory=Preferences)


class ChatMessage(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    role: Literal["system", "user", "assistant"]
    content: str
    created_at: Optional[int] = None


class MessagesPage(BaseModel):
    messages: List[ChatMessage]
    cursor: Optional[str] = None


class LocationContext(BaseModel):
    time: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(default_factory=list)
    location: Optional[LocationContext] = None


class TitleIn(BaseModel):
    title: str
