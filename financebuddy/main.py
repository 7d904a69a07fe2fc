import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from financebuddy.api.routes import router
from financebuddy.config import DIGEST_ENABLED, FRONTEND_URL, LOG_LEVEL
from financebuddy.database import create_tables
from financebuddy.graph.agents import AgentRegistry
from financebuddy.services.chat import ChatDispatcher
from financebuddy.services.conversations import ConversationManager
from financebuddy.services.messaging import MessagingDispatcher
from financebuddy.services.persistence import ConversationRepository
from financebuddy.services.profile import UserContextProvider
from financebuddy.services.scheduler import DigestScheduler
from financebuddy.services.transport import WhatsAppSender

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    logger.info("Database tables created / verified.")

    registry = AgentRegistry()
    profiles = UserContextProvider()
    sender = WhatsAppSender()
    conversations = ConversationManager(ConversationRepository(), profiles)

    app.state.registry = registry
    app.state.profiles = profiles
    app.state.conversations = conversations
    app.state.chat = ChatDispatcher(registry, conversations, profiles)
    app.state.messaging = MessagingDispatcher(profiles, sender)
    app.state.scheduler = DigestScheduler(profiles, sender)

    if DIGEST_ENABLED:
        app.state.scheduler.start()
    yield
    await app.state.scheduler.stop()


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(title="FinanceBuddy API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("financebuddy.main:app", host="0.0.0.0", port=8000, reload=False)
