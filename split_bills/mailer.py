import logging
from typing import List, Optional

import resend

logger = logging.getLogger(__name__)


class MailerError(Exception):
    pass


class Mailer:
    def __init__(self, api_key: str, from_email: str) -> None:
        if not api_key:
            raise ValueError("RESEND_API_KEY must be set")
        resend.api_key = api_key
        self.from_email = from_email

    def send(
        self,
        to: List[str],
        subject: str,
        html_body: str,
        cc: Optional[List[str]] = None,
        bcc: Optional[List[str]] = None,
    ) -> None:
        params = {
            "from": self.from_email,
            "to": to,
            "subject": subject,
            "html": html_body,
        }
        if cc:
            params["cc"] = cc
        if bcc:
            params["bcc"] = bcc

        try:
            resend.Emails.send(params)
        except Exception as exc:
            logger.exception("Failed to send email to %s", ", ".join(to))
            raise MailerError(str(exc)) from exc
