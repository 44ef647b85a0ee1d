"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agentstream.config import settings
from agentstream.database import init_db
from agentstream.redis_client import connect_redis, disconnect_redis
from agentstream.routes import chats, health, stream

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: init DB + Redis. Shutdown: disconnect Redis."""
    await init_db()
    await connect_redis()
    yield
    await disconnect_redis()


app = FastAPI(
    title="agentstream",
    description="Agent event streaming relay",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(chats.router)
app.include_router(stream.router)
