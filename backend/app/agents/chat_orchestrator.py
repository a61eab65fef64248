# backend/app/agents/chat_orchestrator.py

from datetime import date
from typing import AsyncIterator, Callable, List, Optional

from app.agents.travel_agent import TravelAgent
from app.core.config_loader import settings
from app.core.llm import ModelStream
from app.core.logger import logger
from app.db.conversation_actor import ConversationActor, ConversationDirectory
from app.models.conversation_models import ChatMessage, LocationContext
from app.services.background_jobs import BackgroundJobRegistry
from app.services.stream_fanout import StreamFanout
from app.utils.itinerary_extractor import extract_itinerary
from app.utils.stream_parser import accumulate_stream
from app.utils.time_utils import current_time_str, today


class ConversationUnavailableError(Exception):
    """The conversation could not be read even after initializing it."""


# -------------------------------------------------------------
# BACKGROUND: persist the assistant reply
# -------------------------------------------------------------
async def persist_assistant_reply(
    stream: AsyncIterator[bytes],
    actor: ConversationActor,
    base_date: date,
) -> Optional[str]:
    """
    Drain the persistence copy of a model stream and store the outcome.

    Writes the normalized itinerary when the reply carries one, then the full
    reply text (marker and JSON included) as the assistant message. A blank
    reply writes nothing. Returns the stored text.
    """
    text = await accumulate_stream(stream)
    if not text.strip():
        logger.info(f"Empty assistant reply for {actor.conversation_id}; nothing persisted")
        return None

    # the prose is stored even when the itinerary cannot be extracted
    try:
        itinerary = extract_itinerary(text, base_date)
    except Exception as e:
        logger.error(f"Itinerary extraction failed for {actor.conversation_id}: {e}")
        itinerary = None

    if itinerary is not None:
        await actor.update_itinerary(itinerary)
    else:
        logger.debug(f"No itinerary update in reply for {actor.conversation_id}")

    await actor.append_message(ChatMessage(role="assistant", content=text))
    logger.info(f"Assistant reply persisted for {actor.conversation_id} ({len(text)} chars)")
    return text


# -------------------------------------------------------------
# ORCHESTRATOR
# -------------------------------------------------------------
class ChatOrchestrator:
    """
    One chat turn: load state, persist the user message, prompt the model,
    stream the answer to the client and persist it in the background.
    """

    def __init__(
        self,
        directory: ConversationDirectory,
        agent: TravelAgent,
        jobs: BackgroundJobRegistry,
        history_limit: Optional[int] = None,
        clock: Callable[[], date] = today,
    ):
        self.directory = directory
        self.agent = agent
        self.jobs = jobs
        self.history_limit = settings.history_limit if history_limit is None else history_limit
        self.clock = clock

    async def handle_chat(
        self,
        conversation_id: str,
        messages: List[ChatMessage],
        location: Optional[LocationContext] = None,
    ) -> ModelStream:
        actor = self.directory.get(conversation_id)

        # 1. current state, auto-create on first chat
        data = await actor.get_data()
        if data is None:
            logger.info(f"Conversation {conversation_id} not found; initializing on first chat")
            await actor.initialize()
            data = await actor.get_data()
        if data is None:
            raise ConversationUnavailableError(f"Failed to fetch conversation data for {conversation_id}")

        # 2. history first, so the new message is not replayed twice
        history = await actor.get_recent_messages(self.history_limit, exclude_roles=("system",))

        current = messages[-1] if messages and messages[-1].role == "user" else None
        if current is not None:
            await actor.append_message(current)
        else:
            logger.warning(f"Chat request for {conversation_id} does not end with a user message")

        # 3-4. prompt
        if location is None:
            location = LocationContext()
        if not location.time:
            location = location.model_copy(update={"time": current_time_str()})

        system_prompt = self.agent.build_system_prompt(
            preferences=data.preferences,
            itinerary=data.itinerary,
            location=location,
        )
        prompt = self.agent.build_messages(system_prompt, history, current)

        # 5. model call; errors propagate to the router
        model_stream = await self.agent.run(prompt)

        # 6-8. fork: one copy to the client, one to the persistence job
        fanout = StreamFanout(model_stream.body, copies=2, name=f"chat:{conversation_id}")
        client_copy, persist_copy = fanout.consumers()

        self.jobs.spawn(fanout.pump(), name=f"fanout:{conversation_id}")
        self.jobs.spawn(
            persist_assistant_reply(persist_copy, actor, self.clock()),
            name=f"persist:{conversation_id}",
        )

        logger.info(
            f"Chat turn started for {conversation_id}: history={len(history)}, prompt_messages={len(prompt)}"
        )
        return ModelStream(
            body=client_copy,
            headers=dict(model_stream.headers),
            status_code=model_stream.status_code,
        )
