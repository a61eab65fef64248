from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.deps import get_jobs
from app.api.routes_chat import router as chat_router
from app.api.routes_conversation import router as conversation_router
from app.core.config_loader import settings
from app.core.logger import logger


# -------------------------------------------------------------
# LIFESPAN: let background persistence finish before exit
# -------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Travel Agent backend starting (env={settings.environment}, model={settings.chat_model})")
    try:
        yield
    finally:
        await get_jobs().drain()
        logger.info("Travel Agent backend stopped")


app = FastAPI(
    title="Travel Agent",
    description="Travel-planning chat assistant with per-conversation itinerary and preferences",
    version="1.0.0",
    lifespan=lifespan,
)

# -------------------------------------------------------------
# CORS
# -------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # update to frontend domain in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -------------------------------------------------------------
# ROUTES
# -------------------------------------------------------------
app.include_router(conversation_router)
app.include_router(chat_router)


# -------------------------------------------------------------
# ROOT ENDPOINTS
# -------------------------------------------------------------
@app.get("/")
def root():
    return {
        "status": "ok",
        "message": "Travel Agent backend is running",
        "env": settings.environment
    }


@app.get("/health")
def health():
    return {"status": "healthy", "background_jobs": get_jobs().pending}


# -------------------------------------------------------------
# RUN LOCAL
# -------------------------------------------------------------
if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
