# src/zkjwt/schemas/__init__.py
"""Pydantic request and response models."""

from .member import Member, MemberCreate, MemberJoinResponse
from .message import LikesResponse, LikeUpdate, MessageCreate, SignedMessage
from .proof import VerificationResponse

__all__ = [
    "Member", "MemberCreate", "MemberJoinResponse",
    "LikesResponse", "LikeUpdate", "MessageCreate", "SignedMessage",
    "VerificationResponse",
]
