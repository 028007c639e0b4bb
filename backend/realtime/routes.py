"""
WebSocket endpoint for real-time project updates.

Clients connect to /ws?token=<access token> and send JSON messages:

    {"action": "join-project", "projectId": 12}
    {"action": "leave-project", "projectId": 12}

Joining requires read access to the project. Events arrive as
{"event": "<kind>", "channel": "<project id>" | null, "data": {...}}.

A socket never holds a database session between messages: the token and
each join are checked in a short session run in the threadpool.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import sessionmaker

from database import get_session_factory
from models import Project
from auth.dependencies import resolve_token
from auth.permissions import can_read_project
from realtime.fanout import ConnectionManager, Subscriber, channel_for

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def _authenticate(session_factory: sessionmaker, token: Optional[str]) -> int:
    with session_factory() as db:
        return resolve_token(token, db).id


def _join_denial(session_factory: sessionmaker, project_id: int, user_id: int) -> Optional[str]:
    """Return the reason a join is refused, or None when it is allowed."""
    with session_factory() as db:
        project = db.query(Project).filter(Project.id == project_id).first()
        if project is None:
            return "Project not found"
        if not can_read_project(project, user_id):
            return "Not authorized to access this project"
    return None


async def _handle_message(
    manager: ConnectionManager,
    subscriber: Subscriber,
    raw: str,
    session_factory: sessionmaker,
) -> None:
    try:
        message = json.loads(raw)
    except ValueError:
        manager.send(subscriber, {"event": "error", "message": "Malformed message"})
        return

    if not isinstance(message, dict):
        manager.send(subscriber, {"event": "error", "message": "Malformed message"})
        return

    action = message.get("action")
    try:
        project_id = int(message.get("projectId"))
    except (TypeError, ValueError):
        manager.send(subscriber, {"event": "error", "message": "projectId is required"})
        return

    channel = channel_for(project_id)

    if action == "leave-project":
        manager.leave(subscriber, channel)
        manager.send(subscriber, {"event": "left", "channel": channel})
        return

    if action != "join-project":
        manager.send(subscriber, {"event": "error", "message": f"Unknown action: {action}"})
        return

    denial = await run_in_threadpool(_join_denial, session_factory, project_id, subscriber.user_id)
    if denial is not None:
        logger.info(f"User {subscriber.user_id} denied join for channel {channel}: {denial}")
        manager.send(subscriber, {"event": "error", "message": denial})
        return

    manager.join(subscriber, channel)
    manager.send(subscriber, {"event": "joined", "channel": channel})


@router.websocket("/ws")
async def project_events(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    try:
        user_id = await run_in_threadpool(_authenticate, session_factory, token)
    except HTTPException as e:
        logger.info(f"WebSocket connection rejected: {e.detail}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    manager: ConnectionManager = websocket.app.state.fanout
    subscriber = await manager.connect(websocket, user_id)
    try:
        while True:
            raw = await websocket.receive_text()
            await _handle_message(manager, subscriber, raw, session_factory)
    except WebSocketDisconnect:
        logger.debug(f"WebSocket closed by client for user {user_id}")
    finally:
        await manager.disconnect(subscriber)
