# src/zkjwt/api/v1/endpoints/messages.py
"""Message endpoints: signed posts from group members and their likes."""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, HTTPException, Query, status

from zkjwt.core.errors import StoreNotFound, ZkJwtError
from zkjwt.schemas.message import LikesResponse, LikeUpdate, MessageCreate, SignedMessage
from zkjwt.services.ephemeral import verify_message_signature

from ..dependencies import StoreDep, http_error

router = APIRouter(prefix="/messages", tags=["messages"])

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


@router.post("", response_model=SignedMessage, status_code=status.HTTP_201_CREATED)
async def post_message(message: MessageCreate, store: StoreDep) -> SignedMessage:
    """Store a message signed by a registered, unexpired member key."""
    pubkey = message.ephemeral_pubkey.removeprefix("0x").lower()
    try:
        member = store.get_member(pubkey)
    except StoreNotFound as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Ephemeral key is not a registered member",
        ) from exc
    except ZkJwtError as exc:
        raise http_error(exc) from exc

    if member.pubkey_expiry <= datetime.now(UTC):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Ephemeral key has expired")
    if member.group_id != message.anon_group_id or member.provider != message.anon_group_provider:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Message group does not match the member's group",
        )
    if not verify_message_signature(pubkey, message.model_dump(), message.signature):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid message signature")

    try:
        message_id = store.insert_message(message)
        return store.get_message(message_id)
    except ZkJwtError as exc:
        raise http_error(exc) from exc


@router.get("", response_model=list[SignedMessage])
async def list_messages(
    store: StoreDep,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
) -> list[SignedMessage]:
    """Return the newest messages first."""
    try:
        return store.get_latest_messages(limit)
    except ZkJwtError as exc:
        raise http_error(exc) from exc


@router.get("/{message_id}", response_model=SignedMessage)
async def get_message(message_id: int, store: StoreDep) -> SignedMessage:
    try:
        return store.get_message(message_id)
    except ZkJwtError as exc:
        raise http_error(exc) from exc


@router.get("/{message_id}/likes", response_model=LikesResponse)
async def get_likes(message_id: int, store: StoreDep) -> LikesResponse:
    try:
        return LikesResponse(id=message_id, likes=store.get_likes(message_id))
    except ZkJwtError as exc:
        raise http_error(exc) from exc


@router.post("/{message_id}/likes", response_model=LikesResponse)
async def update_likes(message_id: int, update: LikeUpdate, store: StoreDep) -> LikesResponse:
    """Like (``increase: true``) or unlike a message."""
    try:
        return LikesResponse(id=message_id, likes=store.update_likes(message_id, update.increase))
    except ZkJwtError as exc:
        raise http_error(exc) from exc
