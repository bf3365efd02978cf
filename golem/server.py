"""
FastAPI surface over the Golem facade.

    POST   /chat               {"message": ..., "session_id": optional}
    POST   /sessions           create a session
    GET    /sessions           list sessions
    DELETE /sessions/{id}      delete a session
    GET    /stats              bot statistics

The facade is blocking, so every handler runs it on a worker thread.
Serve with ``uvicorn golem.server:create_app --factory``; GOLEM_CORPUS
names a corpus file or directory to load at startup.
"""

import logging
import os
from typing import Optional

import anyio
from fastapi import FastAPI, HTTPException, status
from pydantic import BaseModel

from golem.bot import Golem
from golem.version import __version__
from golem.config import GolemConfig
from golem.errors import SessionError

logger = logging.getLogger(__name__)


class ChatRequest(BaseModel):
    message: str
    session_id: Optional[str] = None


class SessionRequest(BaseModel):
    session_id: Optional[str] = None


def _session_payload(session):
    return session.to_dict()


def create_app(bot: Optional[Golem] = None) -> FastAPI:
    if bot is None:
        bot = Golem(GolemConfig.from_env())
        corpus = os.getenv("GOLEM_CORPUS")
        if corpus:
            result = bot.load(corpus)
            logger.info("Loaded %d categories from %s", len(result.categories), corpus)

    app = FastAPI(title="Golem", version=__version__)
    app.state.bot = bot

    @app.post("/chat")
    async def chat(req: ChatRequest):
        if not req.message.strip():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="message must not be empty")
        resp = await anyio.to_thread.run_sync(bot.respond, req.message, req.session_id)
        return resp.to_dict()

    @app.post("/sessions", status_code=status.HTTP_201_CREATED)
    async def create_session(req: SessionRequest):
        try:
            session = await anyio.to_thread.run_sync(bot.create_session, req.session_id)
        except SessionError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        return _session_payload(session)

    @app.get("/sessions")
    async def list_sessions():
        sessions = await anyio.to_thread.run_sync(bot.list_sessions)
        return {"sessions": [_session_payload(s) for s in sessions]}

    @app.delete("/sessions/{session_id}")
    async def delete_session(session_id: str):
        try:
            await anyio.to_thread.run_sync(bot.delete_session, session_id)
        except SessionError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        return {"status": "deleted", "session_id": session_id}

    @app.get("/stats")
    async def stats():
        return await anyio.to_thread.run_sync(bot.stats)

    return app
