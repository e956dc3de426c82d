"""
Feedback notifications sent to the support inbox through Amazon SES.
"""
from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import FeedbackDeliveryError

logger = logging.getLogger(__name__)

@dataclass
class Feedback:
    id: str
    email: Optional[str]
    type: str
    message: str


def render_text(feedback: Feedback) -> str:
    return (
        "New Feedback Submission\n\n"
        f"ID: {feedback.id}\n"
        f"From: {feedback.email or 'Unknown email'}\n"
        f"Type: {feedback.type}\n\n"
        f"Message:\n{feedback.message}\n"
    )


def render_html(feedback: Feedback) -> str:
    message = html.escape(feedback.message).replace("\n", "<br>")
    return (
        "<!DOCTYPE html><html><head><meta charset=\"UTF-8\"><title>New Feedback Submission</title></head>"
        "<body style=\"font-family: Arial, sans-serif; line-height: 1.6; color: #333;\">"
        "<h2>New Feedback Submission</h2>"
        f"<p><strong>ID:</strong> {html.escape(feedback.id)}</p>"
        f"<p><strong>From:</strong> {html.escape(feedback.email or 'Unknown email')}</p>"
        f"<p><strong>Type:</strong> {html.escape(feedback.type)}</p>"
        "<h3>Message:</h3>"
        f"<div style=\"background-color: #f9f9f9; padding: 15px; border-left: 4px solid #ddd;\">{message}</div>"
        "<p style=\"font-size: 12px; color: #666;\">This is an automated message from the recipe app</p>"
        "</body></html>"
    )


class FeedbackMailer:
    def __init__(self, sender: str, recipient: str, region: str = "us-east-1", client: Any = None):
        if not sender or not recipient:
            raise ValueError("sender and recipient are required")
        self.sender = sender
        self.recipient = recipient
        self._client = client or boto3.client("ses", region_name=region)

    def send(self, feedback: Feedback) -> str:
        """Send one notification and return the SES message id."""
        try:
            response = self._client.send_email(
                Source=self.sender,
                Destination={"ToAddresses": [self.recipient]},
                Message={
                    "Subject": {
                        "Charset": "UTF-8",
                        "Data": f"[Recipe Feedback] New {feedback.type} from {feedback.email or 'Unknown email'}",
                    },
                    "Body": {
                        "Text": {"Charset": "UTF-8", "Data": render_text(feedback)},
                        "Html": {"Charset": "UTF-8", "Data": render_html(feedback)},
                    },
                },
            )
        except (ClientError, BotoCoreError) as error:
            logger.error("Feedback e-mail failed: id=%s, error=%s", feedback.id, error)
            raise FeedbackDeliveryError(f"Could not send feedback {feedback.id}: {error}") from error

        message_id = str(response.get("MessageId", ""))
        logger.info("Feedback e-mail sent: id=%s, message_id=%s", feedback.id, message_id)
        return message_id
