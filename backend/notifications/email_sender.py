"""
Email sending via Resend API for the notification engine.

Templates live in the email_templates table and use {{key}} placeholders.
Built-in defaults cover every template the engine sends so a fresh
database still produces mail.
"""

import html
import re
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Dict, List, Optional, Tuple

import resend

from models import EmailTemplate
from shared.db import get_supabase_client
from shared.errors import GatewayFailure, PersistenceFailure

TEMPLATES_TABLE = "email_templates"

_PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z0-9_]+)\s*\}\}")

_BUTTON_STYLE = (
    "background: #111827; color: white; padding: 12px 24px; "
    "text-decoration: none; border-radius: 6px; display: inline-block;"
)

_FOOTER_HTML = """
            <p style="margin-top: 30px; font-size: 12px; color: #9ca3af;">
                <a href="{{preferences_url}}" style="color: #6b7280;">Manage your notification preferences</a>
                &bull; <a href="{{unsubscribe_url}}" style="color: #6b7280;">Stop these emails</a>
            </p>"""

_FOOTER_TEXT = """
Manage your notification preferences: {{preferences_url}}
Stop these emails: {{unsubscribe_url}}"""


def _wrap_html(body: str) -> str:
    return f"""
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body>
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
{body}
            <p>Best regards,<br/>Exclusimmo Team</p>
{_FOOTER_HTML}
    </div>
</body>
</html>
"""


DEFAULT_TEMPLATES: Dict[str, EmailTemplate] = {
    "property_alert": EmailTemplate(
        name="property_alert",
        subject="New Property Match - {{property_title}}",
        html_template=_wrap_html(f"""
            <h1 style="color: #111827;">New Property Match!</h1>
            <p>Hello {{{{username}}}},</p>
            <p>A new property has been added that matches your search criteria:</p>
            <div style="border: 1px solid #e5e7eb; padding: 20px; margin: 20px 0; border-radius: 8px;">
                <h2 style="margin: 0 0 10px 0; color: #111827;">{{{{property_title}}}}</h2>
                <p style="margin: 0 0 5px 0; color: #6b7280;">{{{{property_city}}}} &bull; {{{{property_type}}}}</p>
                <p style="margin: 0 0 10px 0; font-size: 18px; font-weight: bold; color: #111827;">{{{{property_price}}}}</p>
                <p style="margin: 0 0 15px 0; color: #374151;">{{{{property_description}}}}</p>
                <a href="{{{{property_url}}}}" style="{_BUTTON_STYLE}">View Property</a>
            </div>"""),
        text_template="""New Property Match!

Hello {{username}},

A new property has been added that matches your search criteria:

{{property_title}}
{{property_city}} - {{property_type}}
{{property_price}}

{{property_description}}

View Property: {{property_url}}

Best regards,
Exclusimmo Team
""" + _FOOTER_TEXT,
        variables=[
            "property_title",
            "property_price",
            "property_city",
            "property_type",
            "property_description",
            "property_url",
        ],
    ),
    "subscription_expiry": EmailTemplate(
        name="subscription_expiry",
        subject="Subscription Expiring Soon - {{days_left}} Days Left",
        html_template=_wrap_html(f"""
            <h1 style="color: #dc2626;">Subscription Expiring Soon</h1>
            <p>Hello {{{{username}}}},</p>
            <p>Your subscription will expire in <strong>{{{{days_left}}}} days</strong>.</p>
            <p>To continue enjoying our exclusive property listings and services, please renew your subscription.</p>
            <a href="{{{{renew_url}}}}" style="{_BUTTON_STYLE}">Renew Subscription</a>"""),
        text_template="""Subscription Expiring Soon

Hello {{username}},

Your subscription will expire in {{days_left}} days.

To continue enjoying our exclusive property listings and services, please renew your subscription.

Renew Subscription: {{renew_url}}

Best regards,
Exclusimmo Team
""" + _FOOTER_TEXT,
        variables=["days_left", "renew_url"],
    ),
    "subscription_expired": EmailTemplate(
        name="subscription_expired",
        subject="Your Subscription Has Expired",
        html_template=_wrap_html(f"""
            <h1 style="color: #dc2626;">Subscription Expired</h1>
            <p>Hello {{{{username}}}},</p>
            <p>Your subscription has expired. Please renew to regain access to our services.</p>
            <a href="{{{{renew_url}}}}" style="{_BUTTON_STYLE}">Renew Subscription</a>"""),
        text_template="""Subscription Expired

Hello {{username}},

Your subscription has expired. Please renew to regain access to our services.

Renew Subscription: {{renew_url}}

Best regards,
Exclusimmo Team
""" + _FOOTER_TEXT,
        variables=["renew_url"],
    ),
    "weekly_digest": EmailTemplate(
        name="weekly_digest",
        subject="Your Weekly Property Digest ({{properties_count}} new matches)",
        html_template=_wrap_html("""
            <h1 style="color: #111827;">Your Weekly Property Digest</h1>
            <p>Hello {{username}},</p>
            <p>{{properties_count}} properties matched your alerts this week:</p>
            {{properties_html}}"""),
        text_template="""Your Weekly Property Digest

Hello {{username}},

{{properties_count}} properties matched your alerts this week:

{{properties_text}}

Best regards,
Exclusimmo Team
""" + _FOOTER_TEXT,
        variables=["properties_count", "properties_html", "properties_text"],
    ),
    "welcome": EmailTemplate(
        name="welcome",
        subject="Welcome to Exclusimmo!",
        html_template=_wrap_html(f"""
            <h1 style="color: #111827;">Welcome to Exclusimmo!</h1>
            <p>Hello {{{{username}}}},</p>
            <p>Welcome to our exclusive property platform! You now have access to:</p>
            <ul>
                <li>Exclusive off-market properties</li>
                <li>Personalized property alerts</li>
                <li>Direct contact with property owners</li>
                <li>Priority access to new listings</li>
            </ul>
            <a href="{{{{properties_url}}}}" style="{_BUTTON_STYLE}">Browse Properties</a>"""),
        text_template="""Welcome to Exclusimmo!

Hello {{username}},

Welcome to our exclusive property platform! You now have access to:
- Exclusive off-market properties
- Personalized property alerts
- Direct contact with property owners
- Priority access to new listings

Browse Properties: {{properties_url}}

Best regards,
Exclusimmo Team
""" + _FOOTER_TEXT,
        variables=["properties_url"],
    ),
}


def substitute(text: str, variables: Dict[str, str], escape: bool = False) -> str:
    """
    Replace {{key}} placeholders in one pass.

    Substituted values are never scanned again, so a value that itself
    contains {{...}} stays literal. Unknown placeholders are left as-is.
    With escape=True values are HTML-escaped, except keys ending in _html
    which carry markup the engine built itself.
    """

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        value = str(variables[key])
        if escape and not key.endswith("_html"):
            value = html.escape(value, quote=True)
        return value

    return _PLACEHOLDER.sub(_replace, text)


def render_email(
    template: EmailTemplate, variables: Dict[str, str]
) -> Tuple[str, str, str]:
    """
    Render a template.

    Returns:
        (subject, html_body, text_body)
    """
    subject = substitute(template.subject, variables)
    # Subjects are single-line headers
    subject = " ".join(subject.split())
    html_body = substitute(template.html_template, variables, escape=True)
    text_body = substitute(template.text_template, variables)
    return subject, html_body, text_body


class TemplateRepository:
    """Loads active templates from the database with per-instance caching."""

    def __init__(self, client: Any = None, use_defaults: bool = True):
        self._client = client
        self._use_defaults = use_defaults
        self._cache: Dict[str, EmailTemplate] = {}
        self._lock = threading.Lock()

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    def get(self, name: str) -> Optional[EmailTemplate]:
        """Active template by name, falling back to the built-in default."""
        with self._lock:
            if name in self._cache:
                return self._cache[name]

        template = None
        try:
            response = (
                self.client.table(TEMPLATES_TABLE)
                .select("*")
                .eq("name", name)
                .eq("is_active", True)
                .limit(1)
                .execute()
            )
            if response.data:
                template = EmailTemplate.model_validate(response.data[0])
        except Exception as e:
            print(f"  ⚠ Could not load email template '{name}': {e}")

        if template is None and self._use_defaults:
            template = DEFAULT_TEMPLATES.get(name)

        if template is not None:
            with self._lock:
                self._cache[name] = template
        return template

    def invalidate(self, name: Optional[str] = None) -> None:
        with self._lock:
            if name is None:
                self._cache.clear()
            else:
                self._cache.pop(name, None)

    def install_defaults(self) -> List[str]:
        """Upsert the built-in templates. Returns the names written."""
        written = []
        for template in DEFAULT_TEMPLATES.values():
            try:
                self.client.table(TEMPLATES_TABLE).upsert(
                    template.model_dump(), on_conflict="name"
                ).execute()
                written.append(template.name)
            except Exception as e:
                raise PersistenceFailure(f"install template {template.name}", e) from e
        self.invalidate()
        return written


class EmailGateway(ABC):
    """Hands a rendered message to a delivery provider."""

    @abstractmethod
    def send(self, to: str, subject: str, html_body: str, text_body: str) -> str:
        """
        Send one message.

        Returns:
            Provider message id

        Raises:
            GatewayFailure: The provider rejected the message or timed out
        """

    def close(self) -> None:
        """Release resources held by the gateway."""


class ResendEmailGateway(EmailGateway):
    """EmailGateway backed by the Resend API, with a bounded call timeout."""

    def __init__(
        self,
        api_key: Optional[str],
        from_email: str,
        from_name: str = "Exclusimmo",
        timeout_seconds: float = 10.0,
        max_workers: int = 4,
    ):
        self.api_key = api_key
        self.sender = f"{from_name} <{from_email}>"
        self.timeout_seconds = timeout_seconds
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="resend"
        )

    def _send_now(self, params: Dict[str, Any]) -> Any:
        resend.api_key = self.api_key
        return resend.Emails.send(params)

    def send(self, to: str, subject: str, html_body: str, text_body: str) -> str:
        if not self.api_key:
            raise GatewayFailure("RESEND_API_KEY is not configured")

        params = {
            "from": self.sender,
            "to": to,
            "subject": subject,
            "html": html_body,
            "text": text_body,
        }

        future = self._executor.submit(self._send_now, params)
        try:
            response = future.result(timeout=self.timeout_seconds)
        except FutureTimeout as e:
            future.cancel()
            raise GatewayFailure(
                f"Email to {to} timed out after {self.timeout_seconds}s"
            ) from e
        except Exception as e:
            raise GatewayFailure(f"Email to {to} failed: {e}") from e

        if isinstance(response, dict):
            return str(response.get("id", ""))
        return str(getattr(response, "id", "") or "")

    def close(self) -> None:
        self._executor.shutdown(wait=True, cancel_futures=True)


def send_templated_email(
    gateway: EmailGateway,
    templates: TemplateRepository,
    to: str,
    template_name: str,
    variables: Dict[str, str],
) -> Dict[str, Any]:
    """
    Render a named template and send it.

    Returns:
        Dictionary with 'success' (bool), 'email_id' (str if success), 'error' (str if failed)
    """
    template = templates.get(template_name)
    if template is None:
        return {"success": False, "error": f"Unknown email template '{template_name}'"}

    subject, html_body, text_body = render_email(template, variables)

    try:
        email_id = gateway.send(to, subject, html_body, text_body)
    except GatewayFailure as e:
        return {"success": False, "error": str(e)}

    return {"success": True, "email_id": email_id}
