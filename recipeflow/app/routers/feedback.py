from __future__ import annotations

import logging
from uuid import uuid4

from fastapi import APIRouter, BackgroundTasks, Depends, status

from recipeflow.app.deps import get_feedback_mailer
from recipeflow.app.schemas.feedback import FeedbackRequest, FeedbackResponse
from recipeflow.services.errors import FeedbackDeliveryError
from recipeflow.services.feedback_mailer import Feedback, FeedbackMailer

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/feedback", tags=["feedback"])


def _deliver(mailer: FeedbackMailer, feedback: Feedback) -> None:
    try:
        mailer.send(feedback)
    except FeedbackDeliveryError as error:
        logger.warning("Feedback not delivered: id=%s, error=%s", feedback.id, error)


@router.post("", response_model=FeedbackResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_feedback(
    payload: FeedbackRequest,
    background_tasks: BackgroundTasks,
    mailer: FeedbackMailer = Depends(get_feedback_mailer),
) -> FeedbackResponse:
    feedback = Feedback(
        id=str(uuid4()),
        email=payload.email.strip() if payload.email else None,
        type=payload.type,
        message=payload.message,
    )
    background_tasks.add_task(_deliver, mailer, feedback)
    logger.info("Feedback received: id=%s, type=%s", feedback.id, feedback.type)
    return FeedbackResponse(id=feedback.id, queued=True)
