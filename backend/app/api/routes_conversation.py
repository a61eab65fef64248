# backend/app/api/routes_conversation.py

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.api.deps import get_actor, get_directory
from app.core.logger import logger
from app.db.conversation_actor import ConversationActor, ConversationDirectory
from app.models.conversation_models import TitleIn
from app.models.itinerary_models import Itinerary
from app.models.preference_models import Preferences
from app.utils.display_filter import strip_itinerary_payload

router = APIRouter(prefix="/api/conversations", tags=["conversations"])

MAX_PAGE_SIZE = 200


def _dump(model) -> dict:
    return model.model_dump(by_alias=True, exclude_none=True)


# --------------------------
# Create conversation
# --------------------------
@router.post("")
async def create_conversation(directory: ConversationDirectory = Depends(get_directory)):
    cid = directory.new_id()
    await directory.get(cid).initialize()
    return {"id": cid}


# --------------------------
# List conversations by id-set
# --------------------------
@router.get("")
async def list_conversations(
    ids: Optional[str] = None,
    directory: ConversationDirectory = Depends(get_directory),
):
    if not ids:
        return {"conversations": []}

    conversations = []
    for cid in [i for i in ids.split(",") if i]:
        if not directory.is_valid_id(cid):
            logger.warning(f"Skipping invalid conversation id in list: {cid!r}")
            continue
        meta = await directory.get(cid).get_meta()
        if meta:
            conversations.append(_dump(meta))

    return {"conversations": conversations}


# --------------------------
# Meta / data
# --------------------------
@router.get("/{conversation_id}/meta")
async def get_meta(actor: ConversationActor = Depends(get_actor)):
    meta = await actor.get_meta()
    if not meta:
        raise HTTPException(404, "Conversation not found")
    return _dump(meta)


@router.get("/{conversation_id}/data")
async def get_data(actor: ConversationActor = Depends(get_actor)):
    data = await actor.get_data()
    if not data:
        raise HTTPException(404, "Conversation not found")
    return _dump(data)


# --------------------------
# Messages
# --------------------------
@router.get("/{conversation_id}/messages")
async def get_messages(
    cursor: Optional[str] = "0",
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    display: bool = False,
    actor: ConversationActor = Depends(get_actor),
):
    try:
        start = int(cursor or 0)
    except ValueError:
        start = 0

    page = await actor.get_messages(start, limit)
    result = _dump(page)
    result["cursor"] = page.cursor

    if display:
        for msg in result["messages"]:
            if msg["role"] == "assistant":
                msg["content"] = strip_itinerary_payload(msg["content"])

    return result


# --------------------------
# Updates (wholesale overwrite)
# --------------------------
@router.put("/{conversation_id}/preferences")
async def update_preferences(data: Preferences, actor: ConversationActor = Depends(get_actor)):
    await actor.update_preferences(data)
    return {"success": True}


@router.put("/{conversation_id}/itinerary")
async def update_itinerary(data: Itinerary, actor: ConversationActor = Depends(get_actor)):
    await actor.update_itinerary(data)
    return {"success": True}


@router.put("/{conversation_id}/title")
async def update_title(data: TitleIn, actor: ConversationActor = Depends(get_actor)):
    if not data.title.strip():
        raise HTTPException(400, "Title is required")

    meta = await actor.update_title(data.title.strip())
    if not meta:
        raise HTTPException(404, "Conversation not found")
    return {"success": True}


# --------------------------
# Delete conversation
# --------------------------
@router.delete("/{conversation_id}")
async def delete_conversation(actor: ConversationActor = Depends(get_actor)):
    await actor.delete()
    return {"success": True}
