from dataclasses import dataclass
from datetime import datetime, timezone
from html import escape
from typing import Any, Dict, Optional

import httpx

from autopublisher import config
from autopublisher.core.exceptions import ExternalServiceError


@dataclass
class EmailMessage:
    subject: str
    text: str
    html: str


class BrevoMailer:
    """Transactional email through the Brevo SMTP API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        sender_email: Optional[str] = None,
        sender_name: Optional[str] = None,
        api_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else config.BREVO_API_KEY
        self.sender_email = sender_email if sender_email is not None else config.BREVO_SENDER_EMAIL
        self.sender_name = sender_name or config.BREVO_SENDER_NAME
        self.api_url = api_url or config.BREVO_API_URL
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.api_key and self.sender_email)

    async def send(self, to: str, message: EmailMessage) -> Dict[str, Any]:
        if not self.is_configured():
            raise RuntimeError("BREVO_API_KEY and BREVO_SENDER_EMAIL are not configured")
        payload = {
            "sender": {"name": self.sender_name, "email": self.sender_email},
            "to": [{"email": to}],
            "subject": message.subject,
            "textContent": message.text,
            "htmlContent": message.html,
        }
        headers = {"api-key": self.api_key, "accept": "application/json"}
        async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
            response = await client.post(self.api_url, json=payload, headers=headers)

        if response.is_error:
            try:
                detail = response.json().get("message")
            except ValueError:
                detail = None
            raise ExternalServiceError(f"Failed to send email: {detail or response.reason_phrase}")
        try:
            return response.json()
        except ValueError:
            return {}


def build_confirmation_email(
    title: str,
    video_url: str,
    video_id: str,
    privacy: str,
    thumbnail_uploaded: bool,
    channel_title: Optional[str] = None,
    uploaded_at: Optional[str] = None,
    recipient_name: Optional[str] = None,
) -> EmailMessage:
    channel = channel_title or "your YouTube channel"
    name = recipient_name or "there"
    when = uploaded_at or datetime.now(timezone.utc).isoformat()
    year = datetime.now(timezone.utc).year
    thumbnail_line = "Uploaded" if thumbnail_uploaded else "Not uploaded"
    thumbnail_note = (
        ""
        if thumbnail_uploaded
        else "Note: Custom thumbnail upload may have failed. You can manually add a thumbnail in YouTube Studio."
    )

    subject = f'Video Published: "{title}"'

    text = "\n".join(
        [
            f"Hi {name}!",
            "",
            "Great news! Your video has been successfully uploaded to YouTube.",
            "",
            "VIDEO DETAILS",
            f"Title: {title}",
            f"Channel: {channel}",
            f"Privacy: {privacy}",
            f"Thumbnail: {thumbnail_line}",
            f"Uploaded At: {when}",
            "",
            "WATCH YOUR VIDEO",
            video_url,
            "",
            "VIDEO ID",
            video_id,
            "",
            thumbnail_note,
            "",
            "Thank you for using our Video Publishing Pipeline!",
            f"(c) {year} All rights reserved.",
        ]
    ).strip()

    note_html = (
        ""
        if thumbnail_uploaded
        else f'<p style="background:#fff3cd;padding:15px;border-left:4px solid #ffc107;">{escape(thumbnail_note)}</p>'
    )
    html = f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h1 style="color: #cc0000;">Video Published Successfully!</h1>
  <p>Hi {escape(name)}!</p>
  <p>Great news! Your video has been successfully uploaded to YouTube.</p>
  <table>
    <tr><td><strong>Title:</strong></td><td>{escape(title)}</td></tr>
    <tr><td><strong>Channel:</strong></td><td>{escape(channel)}</td></tr>
    <tr><td><strong>Privacy:</strong></td><td>{escape(privacy)}</td></tr>
    <tr><td><strong>Thumbnail:</strong></td><td>{thumbnail_line}</td></tr>
    <tr><td><strong>Uploaded At:</strong></td><td>{escape(when)}</td></tr>
  </table>
  <p><a href="{escape(video_url, quote=True)}">Watch Your Video</a></p>
  <p>Video ID: <code>{escape(video_id)}</code></p>
  {note_html}
  <p style="color: #666; font-size: 14px;">Thank you for using our Video Publishing Pipeline!<br>&copy; {year} All rights reserved.</p>
</body>
</html>"""

    return EmailMessage(subject=subject, text=text, html=html)
