"""Session schema definitions."""
from typing import Any, Dict, List

from pydantic import BaseModel, Field


class SessionItem(BaseModel):
    """Schema for one active session"""

    id: str = Field(..., description="Session identifier")
    data: Dict[str, Any] = Field(default_factory=dict, description="Stored session body")

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "SessionItem":
        """Split the ``id`` the store injects back out of a listed payload"""
        data = {k: v for k, v in payload.items() if k != "id"}
        return cls(id=payload["id"], data=data)


class SessionListResponse(BaseModel):
    """Response model for listing active sessions"""

    count: int
    sessions: List[SessionItem]

    model_config = {
        "json_schema_extra": {
            "example": {
                "count": 1,
                "sessions": [
                    {"id": "b1Kx...", "data": {"user_id": 42, "cookie": {"maxAge": 1209600000}}}
                ],
            }
        }
    }


class DestroySessionsRequest(BaseModel):
    """Request model for destroying several sessions at once"""

    ids: List[str] = Field(..., min_length=1, description="Session identifiers to destroy")
