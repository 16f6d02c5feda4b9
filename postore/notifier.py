"""
Send a purchase order to its vendor through an HTTP mail API.

The request body is a Jinja2 template rendered in a sandbox, so the same code
drives Brevo, or any other JSON mail endpoint, by swapping the template in
config/ and the headers in MAIL_API_HEADERS.
"""
import json
import logging
import re
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, Optional

from jinja2 import BaseLoader, FileSystemLoader, TemplateNotFound
from jinja2.sandbox import SandboxedEnvironment

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_JUNK_RE = re.compile(r"[\s\-()]")

WHATSAPP_BASE_URL = "https://wa.me/"
MIN_PHONE_DIGITS = 10


def valid_email(address: Optional[str]) -> bool:
    return bool(_EMAIL_RE.match((address or "").strip()))


def format_phone(phone: Optional[str]) -> str:
    """Strip spaces, dashes, brackets and a leading '+' for a wa.me link."""
    cleaned = _PHONE_JUNK_RE.sub("", phone or "")
    return cleaned[1:] if cleaned.startswith("+") else cleaned


def whatsapp_url(phone: str, message: str) -> str:
    return f"{WHATSAPP_BASE_URL}{format_phone(phone)}?text={urllib.parse.quote(message, safe='')}"


# Brevo transactional email body; used when config/<mail_template> is absent.
DEFAULT_MAIL_PAYLOAD_TEMPLATE = """\
{
  "sender": {"name": {{ from_name | tojson }}, "email": {{ from_email | tojson }}},
  "to": [{"email": {{ to_email | tojson }}, "name": {{ to_name | tojson }}}],
  {% if cc_email %}"cc": [{"email": {{ cc_email | tojson }}}],
  {% endif %}"subject": {{ subject | tojson }},
  "htmlContent": {{ html_content | tojson }},
  "textContent": {{ text_content | tojson }}
}
"""


class POMailer:
    """
    Posts a templated JSON payload to config.mail_api_url.  Every call returns
    a result dict (status success | failed | skipped) rather than raising, so
    the caller can record the outcome.
    """

    def __init__(self, config: Any) -> None:
        self.config = config
        self.jinja_env = SandboxedEnvironment(
            loader=FileSystemLoader(str(config.config_dir)),
            keep_trailing_newline=True,
        )

    def render_payload(self, context: Dict[str, Any]) -> str:
        try:
            template = self.jinja_env.get_template(self.config.mail_template)
        except TemplateNotFound:
            template = SandboxedEnvironment(loader=BaseLoader()).from_string(DEFAULT_MAIL_PAYLOAD_TEMPLATE)
        return template.render(**context)

    def build_context(
        self,
        po_number: str,
        to_email: str,
        to_name: str,
        html_content: str,
        text_content: str,
        subject: Optional[str] = None,
    ) -> Dict[str, Any]:
        return {
            "po_number":    po_number,
            "to_email":     to_email,
            "to_name":      to_name or to_email,
            "from_email":   self.config.mail_from_email,
            "from_name":    self.config.mail_from_name,
            "cc_email":     self.config.mail_cc_email,
            "subject":      subject or f"Purchase Order {po_number}",
            "html_content": html_content,
            "text_content": text_content,
        }

    def send(self, context: Dict[str, Any]) -> Dict[str, Any]:
        """Send one PO email described by *context* (see build_context)."""
        po_number = context.get("po_number", "?")
        url = self.config.mail_api_url
        if not url:
            return {"status": "skipped", "reason": "MAIL_API_URL not configured"}
        if not context.get("to_email"):
            return {"status": "skipped", "reason": "vendor has no contact email"}

        try:
            body = self.render_payload(context)
            json.loads(body)
        except Exception as e:
            logger.error("Failed to render mail payload for %s: %s", po_number, e)
            return {"status": "failed", "error": f"Template rendering failed: {e}"}

        req = urllib.request.Request(url, data=body.encode("utf-8"), method="POST")
        req.add_header("Content-Type", "application/json; charset=utf-8")
        req.add_header("Accept", "application/json")
        req.add_header("User-Agent", "PO-Manager-Mailer/1.0")

        if self.config.mail_api_headers_json:
            try:
                for k, v in json.loads(self.config.mail_api_headers_json).items():
                    req.add_header(k, str(v))
            except (ValueError, AttributeError) as e:
                logger.warning("Failed to parse MAIL_API_HEADERS: %s", e)

        try:
            with urllib.request.urlopen(req, timeout=self.config.mail_timeout_seconds) as response:
                status_code = response.getcode()
                resp_body = response.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as e:
            resp_body = e.read().decode("utf-8", errors="replace") if e.fp else str(e)
            logger.error("Mail API rejected %s: HTTP %d - %s", po_number, e.code, resp_body)
            return {"status": "failed", "status_code": e.code, "error": resp_body[:500]}
        except (urllib.error.URLError, OSError) as e:
            logger.error("Mail API error for %s: %s", po_number, e)
            return {"status": "failed", "error": str(e)}

        message_id = None
        try:
            message_id = json.loads(resp_body).get("messageId")
        except (ValueError, AttributeError):
            pass
        logger.info("Sent %s to %s: HTTP %d", po_number, context["to_email"], status_code)
        return {
            "status": "success",
            "status_code": status_code,
            "message_id": message_id,
            "response_summary": resp_body[:200],
        }
