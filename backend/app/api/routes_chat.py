# backend/app/api/routes_chat.py

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse, StreamingResponse

from app.agents.chat_orchestrator import ChatOrchestrator
from app.api.deps import get_orchestrator
from app.core.logger import logger
from app.db.conversation_actor import ConversationDirectory
from app.models.conversation_models import ChatRequest

router = APIRouter(prefix="/api/conversations", tags=["chat"])


# -----------------------------
# Chat endpoint - streams the model reply
# -----------------------------
@router.post("/{conversation_id}/chat", summary="Chat with the travel agent")
async def chat(
    conversation_id: str,
    req: ChatRequest,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    """
    Streams newline-delimited JSON ({"response": "..."}) while the reply is
    generated. The reply and any itinerary it carries are stored in the
    background once the stream ends; the client never waits for that.
    """
    if not ConversationDirectory.is_valid_id(conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found")

    if not req.messages:
        raise HTTPException(status_code=400, detail="Messages are required")

    try:
        stream = await orchestrator.handle_chat(conversation_id, req.messages, req.location)
    except Exception as e:
        logger.error(f"Chat error for {conversation_id}: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})

    return StreamingResponse(
        stream.body,
        status_code=stream.status_code,
        headers=stream.headers,
    )
