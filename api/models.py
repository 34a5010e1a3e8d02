"""Pydantic models for the agent API."""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from blocker.models import MessageSender


class SenderModel(BaseModel):
    """Identity of the context sending a message."""
    tab_id: Optional[int] = Field(None, description="Tab the message comes from")
    frame_id: Optional[int] = Field(None, description="Frame within the tab")
    origin: Optional[str] = Field(None, description="Origin of the sending context, if reported")
    url: Optional[str] = Field(None, description="URL of the sending context")

    def to_sender(self) -> MessageSender:
        return MessageSender(
            tab_id=self.tab_id,
            frame_id=self.frame_id,
            origin=self.origin,
            url=self.url,
        )


class MessageModel(BaseModel):
    """A message for the agent; fields besides ``what`` depend on its kind."""
    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={
            "example": {
                "what": "setLevel",
                "hostname": "example.com",
                "level": 3,
                "sender": {"origin": "chrome-extension://blocker"},
            }
        },
    )

    what: str = Field(..., description="Message kind")
    sender: SenderModel = Field(default_factory=SenderModel)

    def to_request(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"sender"})


class MessageResponseModel(BaseModel):
    response: Any = Field(None, description="What the agent replied")


class PermissionsModel(BaseModel):
    """Origins added to or removed from the permission grants."""
    origins: List[str] = Field(default_factory=list, description="Origin match patterns")


class PermissionsResponseModel(BaseModel):
    changed: bool = Field(..., description="Whether the policy or registrations changed")


class CommandModel(BaseModel):
    tab_id: Optional[int] = Field(None, description="Active tab")


class CommandResponseModel(BaseModel):
    command: str
    handled: bool


class HealthModel(BaseModel):
    status: str
    version: str
    build: Dict[str, str] = Field(default_factory=dict)
    components: Dict[str, str] = Field(default_factory=dict)
    state: str
    outcome: Optional[str] = None
