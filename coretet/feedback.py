"""Beta feedback: stored in the database and relayed by email."""

import html
import logging
from typing import Any, Dict, List, Optional

from .constants import DEFAULT_FEEDBACK_RECIPIENT, FEEDBACK_SENDER
from .errors import CoreTetError, UpstreamError, ValidationError
from .models import Feedback, Identity, utc_now

logger = logging.getLogger(__name__)


def render_feedback_email(feedback: Feedback, email: Optional[str]) -> Dict[str, str]:
    sent_at = utc_now().strftime("%Y-%m-%d %H:%M UTC")
    attachment_items = "".join(
        f'<li><a href="{html.escape(url)}">View attachment</a></li>' for url in feedback.attachments
    )
    body_html = (
        "<h2>Beta User Feedback</h2>"
        f"<p><strong>From:</strong> {html.escape(email or 'unknown')}</p>"
        f"<p><strong>User ID:</strong> {html.escape(feedback.user_id)}</p>"
        f"<p><strong>Date/Time:</strong> {sent_at}</p>"
        f"<p><strong>Topic:</strong> {html.escape(feedback.topic)}</p>"
        f'<h3>Comment:</h3><p style="white-space: pre-wrap;">{html.escape(feedback.comment)}</p>'
    )
    if feedback.attachments:
        body_html += f"<h3>Attachments ({len(feedback.attachments)}):</h3><ul>{attachment_items}</ul>"

    text = (
        f"Beta User Feedback\n\nFrom: {email}\nUser ID: {feedback.user_id}\n"
        f"Date/Time: {sent_at}\nTopic: {feedback.topic}\n\nComment:\n{feedback.comment}"
    )
    if feedback.attachments:
        text += f"\n\nAttachments ({len(feedback.attachments)}):\n" + "\n".join(feedback.attachments)
    return {"html": body_html, "text": text}


class FeedbackService:
    def __init__(self, database, mailer=None, recipient: str = DEFAULT_FEEDBACK_RECIPIENT):
        self.db = database
        self.mailer = mailer
        self.recipient = recipient

    def submit(self, identity: Identity, topic: Any, comment: Any,
               attachments: Optional[List[str]] = None) -> Dict[str, Any]:
        if not isinstance(topic, str) or not topic.strip() or not isinstance(comment, str) or not comment.strip():
            raise ValidationError("Topic and comment are required")
        attachments = attachments or []
        if not isinstance(attachments, list) or not all(isinstance(a, str) for a in attachments):
            raise ValidationError("attachments must be a list of URLs", field="attachments")

        feedback = Feedback(
            id=Feedback.generate_id(),
            user_id=identity.id,
            topic=topic.strip(),
            comment=comment,
            attachments=attachments,
        )

        saved = True
        try:
            self.db.insert_feedback(feedback)
        except CoreTetError as e:
            # The email relay still runs; the response depends on both outcomes.
            logger.error("Error storing feedback: %s", e)
            saved = False

        if self.mailer is None:
            if not saved:
                raise UpstreamError("Failed to save feedback")
            return {"success": True, "message": "Feedback saved successfully"}

        content = render_feedback_email(feedback, identity.email)
        try:
            self.mailer.send(
                sender=FEEDBACK_SENDER,
                to=[self.recipient],
                subject=f"Beta Feedback: {feedback.topic}",
                html=content["html"],
                text=content["text"],
            )
        except UpstreamError as e:
            logger.error("Feedback email failed: %s", e)
            if saved:
                return {"success": True, "message": "Feedback saved but email could not be sent"}
            raise UpstreamError("Failed to send email and save feedback")

        return {"success": True, "message": "Feedback sent successfully"}
