"""
Pydantic schemas for request/response validation.

Length and emptiness rules are not enforced here: the service validates
submissions itself so a rejected message gets the same outcome shape as
every other rejection.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


# =============================================================================
# Pydantic Request Models
# =============================================================================

class CandleRequest(BaseModel):
    """Body of POST /api/candles and POST /api/moderate."""
    message: Optional[str] = Field(
        None,
        description="Memorial message, at most 150 characters after trimming"
    )

    model_config = {
        "json_schema_extra": {
            "examples": [{"message": "Vi saknar dig."}]
        }
    }


# =============================================================================
# Pydantic Response Models
# =============================================================================

class CandlesResponse(BaseModel):
    """Response model for GET /api/candles."""
    messages: list[str] = Field(
        default_factory=list,
        description="All candle messages in the order they were lit"
    )
    count: int = Field(..., ge=0, description="Number of candles")


class SubmissionResponse(BaseModel):
    """Response model for POST /api/candles."""
    accepted: bool = Field(..., description="Whether the candle was stored")
    status: Literal[
        "accepted",
        "validation_rejected",
        "moderation_rejected",
        "service_unavailable",
    ] = Field(..., description="Submission outcome")
    reason: Optional[str] = Field(None, description="Why the candle was not stored")


class ModerationResponse(BaseModel):
    """Response model for POST /api/moderate."""
    result: Literal["SAFE", "UNSAFE"]


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
