"""
Habitual Agents API.

Goal-bearing chat agents that draft, schedule and track a user's actions.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import models  # noqa: F401  (registers tables on Base.metadata)
from .config import settings
from .database import Base, engine
from .routers import actions, agent_chat, agents, setup_chat

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_info() -> dict:
    info = {"app_name": settings.app_name, "version": settings.app_version}
    if settings.git_commit:
        info["git_commit"] = settings.git_commit[:8]
    if settings.build_date:
        info["build_date"] = settings.build_date
    return info


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s", ", ".join(f"{k}={v}" for k, v in build_info().items()))
    logger.info("Model: %s | filesystem tools: %s",
                settings.model_id or "default",
                "on" if settings.filesystem_tools_enabled else "off")
    Base.metadata.create_all(bind=engine)
    yield
    logger.info("Shutting down %s", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Chat with goal agents that draft, schedule and track your actions",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for module in (agents, actions, agent_chat, setup_chat):
    app.include_router(module.router)


@app.get("/health")
def health_check():
    return {"status": "healthy"}


@app.get("/api/version")
def version():
    return build_info()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("habitual.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
