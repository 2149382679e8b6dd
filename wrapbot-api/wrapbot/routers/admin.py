"""Admin endpoints for inspecting and tearing down per-user state."""

from typing import Optional

from fastapi import APIRouter, Header, HTTPException
from pydantic import BaseModel

from wrapbot.config import settings
from wrapbot.logging_config import get_logger
from wrapbot.routers.telegram_webhook import get_conversation
from wrapbot.schemas.session import Session

logger = get_logger("admin")

router = APIRouter(prefix="/admin", tags=["admin"])


class SessionInfoResponse(BaseModel):
    identity: str
    session: Session
    locked: bool
    usage_count: int
    remaining: int


class DeletedResponse(BaseModel):
    identity: str
    deleted: bool


def _require_admin_token(provided: Optional[str]) -> None:
    expected = settings.admin_token
    if not expected:
        raise HTTPException(status_code=500, detail="ADMIN_TOKEN not configured")
    if not provided or provided != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


@router.get("/sessions/{identity}", response_model=SessionInfoResponse)
async def get_session_info(
    identity: str,
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)
    conversation = get_conversation()
    session = await conversation.sessions.get(identity)
    return SessionInfoResponse(
        identity=identity,
        session=session,
        locked=await conversation.lock.is_locked(identity),
        usage_count=await conversation.usage.get_count(identity),
        remaining=await conversation.usage.remaining(identity),
    )


@router.delete("/sessions/{identity}", response_model=DeletedResponse)
async def delete_session(
    identity: str,
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)
    await get_conversation().sessions.delete(identity)
    logger.info("Session deleted by admin", extra={"context": {"identity": identity}})
    return DeletedResponse(identity=identity, deleted=True)


@router.delete("/locks/{identity}", response_model=DeletedResponse)
async def release_lock(
    identity: str,
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)
    lock = get_conversation().lock
    was_locked = await lock.is_locked(identity)
    await lock.release(identity)
    logger.warning("Processing lock released by admin", extra={"context": {"identity": identity}})
    return DeletedResponse(identity=identity, deleted=was_locked)
