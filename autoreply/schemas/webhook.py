from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class AutoReplyRequest(BaseModel):
    """Payload posted by the AutoReply app for every incoming chat message."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    senderMessage: str = Field(validation_alias=AliasChoices("senderMessage", "sender_message", "message"))
    senderName: str = Field(default="", validation_alias=AliasChoices("senderName", "sender_name", "sender"))
    groupName: Optional[str] = Field(default=None, validation_alias=AliasChoices("groupName", "group_name"))
    isMessageFromGroup: bool = Field(
        default=False,
        validation_alias=AliasChoices("isMessageFromGroup", "is_message_from_group"),
    )

    @property
    def effective_group(self) -> Optional[str]:
        if self.groupName and self.groupName.strip():
            return self.groupName.strip()
        return None


class ReplyItem(BaseModel):
    message: str


class AutoReplyResponse(BaseModel):
    data: List[ReplyItem]

    @staticmethod
    def of(message: str) -> "AutoReplyResponse":
        return AutoReplyResponse(data=[ReplyItem(message=message)])


class RouterStatsResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    pool_size: int
    current_credential_index: int
    current_model: str
    current_model_index: Optional[int] = None
    model_fallback: bool
    models: List[str]
    rotation_policy: str
    failures: Dict[int, Optional[float]]
    model_failures: Dict[str, float]


class RotateResponse(BaseModel):
    success: bool
    message: str
    current: Dict[str, Any]
