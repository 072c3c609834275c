"""Admin endpoints for inspecting and steering the failover router."""

import os
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel

from autoreply.schemas.webhook import RotateResponse, RouterStatsResponse
from autoreply.services.ai_service import get_failover_router
from autoreply.services.alert_service import send_alert
from autoreply.services.llm import FailoverRouter, ModelFallbackDisabledError

router = APIRouter(prefix="/admin", tags=["admin"])


class AlertTestResponse(BaseModel):
    success: bool
    message: str


def require_admin_token(x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token")) -> None:
    expected = os.environ.get("ADMIN_TOKEN")
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="ADMIN_TOKEN not configured",
        )
    if not x_admin_token or x_admin_token != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")


@router.get("/router/stats", response_model=RouterStatsResponse, dependencies=[Depends(require_admin_token)])
def router_stats(chat_router: FailoverRouter = Depends(get_failover_router)):
    return RouterStatsResponse(**chat_router.current_stats())


@router.post("/router/rotate-credential", response_model=RotateResponse, dependencies=[Depends(require_admin_token)])
def rotate_credential(chat_router: FailoverRouter = Depends(get_failover_router)):
    credential = chat_router.rotate_credential()
    return RotateResponse(
        success=True,
        message=f"Now using credential #{credential.index} ({credential.masked})",
        current={"credential_index": credential.index},
    )


@router.post("/router/rotate-model", response_model=RotateResponse, dependencies=[Depends(require_admin_token)])
def rotate_model(chat_router: FailoverRouter = Depends(get_failover_router)):
    try:
        model = chat_router.rotate_model()
    except ModelFallbackDisabledError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return RotateResponse(
        success=True,
        message=f"Now using model {model}",
        current={"model": model, "model_index": chat_router.state.model_index},
    )


@router.post("/alerts/test", response_model=AlertTestResponse, dependencies=[Depends(require_admin_token)])
def alerts_test():
    sent = send_alert("INFO", "Alerts test", {"source": "admin.alerts.test"})
    if sent:
        return AlertTestResponse(success=True, message="Alert sent")
    return AlertTestResponse(success=False, message="Alert not sent (check ALERT_BOT_TOKEN/ALERT_CHAT_ID)")
