from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bepit.db.session import get_session
from bepit.models.chat import FeedbackRequest, FeedbackResponse
from bepit.services.telemetry import TelemetryWriter

router = APIRouter(prefix="/api/feedback", tags=["feedback"])


def get_telemetry_writer(session: Session = Depends(get_session)) -> TelemetryWriter:
    return TelemetryWriter(session)


@router.post("", response_model=FeedbackResponse)
async def submit_feedback(
    request: FeedbackRequest,
    telemetry: TelemetryWriter = Depends(get_telemetry_writer),
) -> FeedbackResponse:
    result = await telemetry.record_feedback_async(request.interactionId, request.feedback)
    return FeedbackResponse(success=result.ok)
