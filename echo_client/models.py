# echo_client/models.py
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StreamRequest(BaseModel):
    """
    Immutable input to one streaming session.

    Serialized to the wire with camelCase keys; unset optional fields are
    left out of the request body.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message: str = Field(min_length=1)
    conversation_id: str | None = Field(default=None, alias="conversationId")
    skill: str | None = None
    page_context: dict[str, Any] | None = Field(default=None, alias="pageContext")

    def to_payload(self) -> dict[str, Any]:
        """Build the JSON body for the stream endpoint."""
        return self.model_dump(by_alias=True, exclude_none=True)


class StreamResult(BaseModel):
    """Value delivered when a session completes successfully."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    response: str
    conversation_id: str | None = Field(default=None, alias="conversationId")
