from autoreply.schemas.webhook import (
    AutoReplyRequest,
    AutoReplyResponse,
    ReplyItem,
    RotateResponse,
    RouterStatsResponse,
)

__all__ = ["AutoReplyRequest", "AutoReplyResponse", "ReplyItem", "RotateResponse", "RouterStatsResponse"]
