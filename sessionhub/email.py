"""
Outbound email through Resend.
"""
import logging
from html import escape
import resend
from sessionhub.config import get_settings

logger = logging.getLogger(__name__)


class EmailSender:
    """
    Sends HTML mail. Failures are logged and reported, never raised or retried.
    """
    
    def __init__(self, api_key: str, sender: str):
        self.api_key = api_key
        self.sender = sender
    
    def send(self, to_address: str, html_body: str, subject: str = "Sessions") -> bool:
        if not self.api_key:
            logger.warning("Email delivery is disabled (no API key); message not sent")
            return False
        
        resend.api_key = self.api_key
        params = {
            "from": self.sender,
            "to": [to_address],
            "subject": subject,
            "html": html_body,
        }
        
        try:
            response = resend.Emails.send(params)
        except Exception as e:
            logger.error("Failed to send email to %s: %s", to_address, e)
            return False
        
        logger.info("Email sent, id=%s", response.get("id"))
        return True


def recovery_email_html(link: str) -> str:
    return f'<a href="{escape(link, quote=True)}">reset password</a>'


def get_email_sender() -> EmailSender:
    settings = get_settings()
    return EmailSender(settings.resend_api_key, settings.email_from)
