# backend/app/api/deps.py

from functools import lru_cache

from fastapi import Depends, HTTPException

from app.agents.chat_orchestrator import ChatOrchestrator
from app.agents.travel_agent import TravelAgent
from app.db.conversation_actor import ConversationActor, ConversationDirectory
from app.db.kv_store import SQLiteKVStore
from app.services.background_jobs import BackgroundJobRegistry


@lru_cache()
def get_store() -> SQLiteKVStore:
    return SQLiteKVStore()


@lru_cache()
def get_directory() -> ConversationDirectory:
    return ConversationDirectory(get_store())


@lru_cache()
def get_jobs() -> BackgroundJobRegistry:
    return BackgroundJobRegistry()


@lru_cache()
def get_agent() -> TravelAgent:
    return TravelAgent()


def get_orchestrator(
    directory: ConversationDirectory = Depends(get_directory),
    agent: TravelAgent = Depends(get_agent),
    jobs: BackgroundJobRegistry = Depends(get_jobs),
) -> ChatOrchestrator:
    return ChatOrchestrator(directory, agent, jobs)


def get_actor(
    conversation_id: str,
    directory: ConversationDirectory = Depends(get_directory),
) -> ConversationActor:
    if not directory.is_valid_id(conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found")
    return directory.get(conversation_id)
