# backend/app/agents/travel_agent.py

import json
from typing import Dict, List, Optional

from app.core.config_loader import settings
from app.core.llm import ModelStream, stream_chat_completion
from app.models.conversation_models import ChatMessage, LocationContext
from app.models.itinerary_models import Itinerary
from app.models.preference_models import Preferences
from app.utils.itinerary_extractor import ITINERARY_MARKER


ITINERARY_FORMAT_INSTRUCTIONS = f"""Itinerary format:
Whenever you create or change the itinerary, answer in two parts.
1. A human-readable itinerary in markdown (headings per day, a bullet per activity).
2. On its own line the exact marker {ITINERARY_MARKER} followed by ONE fenced ```json block
   containing the COMPLETE updated itinerary with exactly this schema:

```json
{{
  "days": [
    {{
      "date": "YYYY-MM-DD",
      "items": [
        {{
          "id": "day-1-item-1",
          "title": "Activity name",
          "timeRange": "09:00-11:00",
          "location": {{"name": "Place", "address": "Street, City", "lat": 0.0, "lon": 0.0}},
          "notes": "Optional notes"
        }}
      ]
    }}
  ]
}}
```

Rules for the JSON block:
- Use the field names date, items, title, timeRange. Never use day, activities, activity or time.
- Every item needs a non-empty title; timeRange, location and notes are optional.
- Write nothing after the JSON block.
- If the itinerary did not change, do not emit the marker or the JSON block."""


class TravelAgent:
    """
    Builds the prompt for one chat turn and streams the model's answer.
    """

    def __init__(self, model: Optional[str] = None):
        self.model = model or settings.chat_model

    # -----------------------------
    # System prompt
    # -----------------------------
    def build_system_prompt(
        self,
        preferences: Optional[Preferences] = None,
        itinerary: Optional[Itinerary] = None,
        location: Optional[LocationContext] = None,
    ) -> str:
        prefs = json.dumps(preferences.to_storage() if preferences else {}, indent=2, ensure_ascii=False)
        itin = json.dumps(itinerary.to_storage() if itinerary else {}, indent=2, ensure_ascii=False)
        loc = json.dumps(location.model_dump(exclude_none=True) if location else {}, indent=2, ensure_ascii=False)

        return f"""You are an expert travel agent assistant. Help users plan and manage their travel itineraries.

User Preferences:
{prefs}

Current Itinerary:
{itin}

Location/Time Context:
{loc}

Guidelines:
- Be concise, practical, and proactive
- Reference the itinerary when answering questions
- Consider user preferences (pace, diet, budget, travel mode)
- When user is on-site, use their current location/time to suggest nearby options
- You can help modify the itinerary, suggest activities, find places near the user, and answer travel questions.

{ITINERARY_FORMAT_INSTRUCTIONS}"""

    # -----------------------------
    # Prompt assembly
    # -----------------------------
    @staticmethod
    def build_messages(
        system_prompt: str,
        history: List[ChatMessage],
        current: Optional[ChatMessage],
    ) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": system_prompt}]
        for msg in history:
            if msg.role == "system":
                continue
            messages.append({"role": msg.role, "content": msg.content})
        if current is not None:
            messages.append({"role": current.role, "content": current.content})
        return messages

    # -----------------------------
    # Model call
    # -----------------------------
    async def run(self, messages: List[Dict[str, str]]) -> ModelStream:
        return await stream_chat_completion(messages, model=self.model)
