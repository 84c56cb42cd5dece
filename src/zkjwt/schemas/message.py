# src/zkjwt/schemas/message.py
"""Message-related Pydantic schemas."""

from pydantic import BaseModel, Field


class MessageCreate(BaseModel):
    """Schema for posting a message signed by a member's ephemeral key."""

    anon_group_id: str = Field(..., min_length=1, max_length=64, description="Domain of the author")
    anon_group_provider: str = Field(..., description="Identity provider of the author")
    text: str = Field(..., min_length=1, max_length=2000, description="Message body")
    timestamp: int = Field(..., ge=0, description="Client timestamp in unix milliseconds")
    internal: bool = Field(default=False, description="Visible to the author's domain only")
    ephemeral_pubkey: str = Field(..., description="Hex-encoded Ed25519 public key of the author")
    signature: str = Field(..., description="Hex-encoded Ed25519 signature over the signed fields")


class SignedMessage(MessageCreate):
    """Stored message with its assigned id and like count."""

    id: int
    likes: int = 0


class LikeUpdate(BaseModel):
    """Schema for liking or unliking a message."""

    increase: bool = True


class LikesResponse(BaseModel):
    """Current like count of a message."""

    id: int
    likes: int
