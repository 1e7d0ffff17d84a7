"""
Outbound notification sinks: email, WhatsApp and invoicing.

Each sink exposes ``send(payload) -> NotificationResult`` and never raises for a
delivery problem. ``retryable`` marks failures worth another attempt (network
errors, 429, 5xx); an unconfigured sink fails without it.
"""
import logging
import time
from dataclasses import asdict, dataclass

import requests
from flask import current_app

from utils.emailer import email_configured, send_email

log = logging.getLogger(__name__)


@dataclass
class NotificationResult:
    success: bool
    error: str | None = None
    reference: str | None = None
    retryable: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def _is_retryable(status: int) -> bool:
    return status == 0 or status == 429 or status >= 500


def _call(method: str, url: str, timeout: int = 15, **kwargs):
    """Returns (ok, status_code, body); status 0 means the request never completed."""
    try:
        resp = requests.request(method, url, timeout=timeout, **kwargs)
    except requests.RequestException as exc:
        log.warning("%s %s failed: %s", method, url, exc)
        return False, 0, str(exc)

    try:
        body = resp.json()
    except ValueError:
        body = resp.text
    ok = 200 <= resp.status_code < 300
    if not ok:
        log.error("%s %s -> status=%s body=%s", method, url, resp.status_code, body)
    return ok, resp.status_code, body


class EmailSink:
    channel = "email"

    def configured(self) -> bool:
        return email_configured()

    def send(self, payload: dict) -> NotificationResult:
        if not self.configured():
            return NotificationResult(False, "Email not configured")
        ok, err = send_email(
            payload["to"],
            payload["subject"],
            payload["body"],
            attachments=payload.get("attachments"),
        )
        return NotificationResult(ok, err, retryable=not ok)


class WhatsAppSink:
    """Meta WhatsApp Cloud API."""

    channel = "whatsapp"

    def __init__(self, phone_number_id=None, access_token=None, api_base="https://graph.facebook.com/v19.0"):
        self.phone_number_id = phone_number_id
        self.access_token = access_token
        self.api_base = api_base.rstrip("/")

    @classmethod
    def from_config(cls, config) -> "WhatsAppSink":
        return cls(
            phone_number_id=config.get("WHATSAPP_PHONE_NUMBER_ID"),
            access_token=config.get("WHATSAPP_ACCESS_TOKEN"),
            api_base=config.get("WHATSAPP_API_BASE") or "https://graph.facebook.com/v19.0",
        )

    def configured(self) -> bool:
        return bool(self.phone_number_id and self.access_token)

    @property
    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.access_token}"}

    def _upload_document(self, filename: str, content: bytes, mime_type: str):
        return _call(
            "POST",
            f"{self.api_base}/{self.phone_number_id}/media",
            headers=self._headers,
            data={"messaging_product": "whatsapp", "type": mime_type},
            files={"file": (filename, content, mime_type)},
        )

    def send(self, payload: dict) -> NotificationResult:
        """
        payload: ``to`` (E.164), ``text`` and optionally ``document`` as
        ``(filename, bytes, mime_type)``, sent with ``text`` as its caption.
        """
        if not self.configured():
            return NotificationResult(False, "WhatsApp not configured")

        to = payload["to"].lstrip("+")
        document = payload.get("document")

        if document:
            filename, content, mime_type = document
            ok, status, body = self._upload_document(filename, content, mime_type)
            if not ok:
                return NotificationResult(False, f"Media upload failed: {body}", retryable=_is_retryable(status))
            message = {
                "messaging_product": "whatsapp",
                "to": to,
                "type": "document",
                "document": {"id": body.get("id"), "filename": filename, "caption": payload.get("text", "")},
            }
        else:
            message = {
                "messaging_product": "whatsapp",
                "to": to,
                "type": "text",
                "text": {"body": payload["text"]},
            }

        ok, status, body = _call(
            "POST",
            f"{self.api_base}/{self.phone_number_id}/messages",
            headers={**self._headers, "Content-Type": "application/json"},
            json=message,
        )
        if not ok:
            return NotificationResult(False, f"WhatsApp send failed: {body}", retryable=_is_retryable(status))

        message_id = None
        if isinstance(body, dict):
            message_id = (body.get("messages") or [{}])[0].get("id")
        return NotificationResult(True, reference=message_id)


class InvoiceSink:
    """Zoho Invoice REST API (OAuth refresh-token flow)."""

    channel = "invoice"

    # booking payment status -> invoice action
    _STATUS_ACTIONS = {
        "paid": "payment",
        "paid_manual": "payment",
        "refunded": "void",
        "unpaid": "draft",
        "awaiting_payment": "sent",
    }

    def __init__(self, client_id=None, client_secret=None, refresh_token=None, organization_id=None,
                 api_base="https://www.zohoapis.com/invoice/v3", accounts_url="https://accounts.zoho.com"):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.organization_id = organization_id
        self.api_base = api_base.rstrip("/")
        self.accounts_url = accounts_url.rstrip("/")
        self._token = None
        self._token_expires_at = 0.0

    @classmethod
    def from_config(cls, config) -> "InvoiceSink":
        return cls(
            client_id=config.get("ZOHO_CLIENT_ID"),
            client_secret=config.get("ZOHO_CLIENT_SECRET"),
            refresh_token=config.get("ZOHO_REFRESH_TOKEN"),
            organization_id=config.get("ZOHO_ORGANIZATION_ID"),
            api_base=config.get("ZOHO_API_BASE") or "https://www.zohoapis.com/invoice/v3",
            accounts_url=config.get("ZOHO_ACCOUNTS_URL") or "https://accounts.zoho.com",
        )

    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token and self.organization_id)

    def _access_token(self):
        if self._token and time.monotonic() < self._token_expires_at:
            return True, 200, self._token

        ok, status, body = _call(
            "POST",
            f"{self.accounts_url}/oauth/v2/token",
            params={
                "refresh_token": self.refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
            },
        )
        if not ok or not isinstance(body, dict) or "access_token" not in body:
            return False, status, body

        self._token = body["access_token"]
        # refresh a minute early
        self._token_expires_at = time.monotonic() + int(body.get("expires_in", 3600)) - 60
        return True, status, self._token

    def _api(self, method: str, path: str, **kwargs):
        ok, status, token = self._access_token()
        if not ok:
            return False, status, f"Token refresh failed: {token}"
        headers = {
            "Authorization": f"Zoho-oauthtoken {token}",
            "X-com-zoho-invoice-organizationid": str(self.organization_id),
        }
        return _call(method, f"{self.api_base}{path}", headers=headers, **kwargs)

    def _contact_id(self, name: str, email: str | None):
        params = {"email": email} if email else {"contact_name": name}
        ok, status, body = self._api("GET", "/contacts", params=params)
        if not ok:
            return False, status, body
        contacts = body.get("contacts") or []
        if contacts:
            return True, status, contacts[0]["contact_id"]

        contact = {"contact_name": name}
        if email:
            contact["contact_persons"] = [{"email": email, "is_primary_contact": True}]
        ok, status, body = self._api("POST", "/contacts", json=contact)
        if not ok:
            return False, status, body
        return True, status, body["contact"]["contact_id"]

    def send(self, payload: dict) -> NotificationResult:
        """
        payload: ``customer_name``, ``customer_email``, ``reference``,
        ``line_items`` (``name``, ``rate``, ``quantity``) and ``notes``.
        ``reference`` on success is the created invoice id.
        """
        if not self.configured():
            return NotificationResult(False, "Invoicing not configured")

        ok, status, contact_id = self._contact_id(payload["customer_name"], payload.get("customer_email"))
        if not ok:
            return NotificationResult(False, f"Contact lookup failed: {contact_id}", retryable=_is_retryable(status))

        invoice = {
            "customer_id": contact_id,
            "reference_number": payload.get("reference"),
            "line_items": payload["line_items"],
            "notes": payload.get("notes") or "",
        }
        ok, status, body = self._api("POST", "/invoices", json=invoice)
        if not ok:
            return NotificationResult(False, f"Invoice creation failed: {body}", retryable=_is_retryable(status))
        return NotificationResult(True, reference=body["invoice"]["invoice_id"])

    def update_status(self, invoice_id: str, payment_status: str, amount=None) -> NotificationResult:
        if not self.configured():
            return NotificationResult(False, "Invoicing not configured")

        action = self._STATUS_ACTIONS.get(payment_status)
        if action is None:
            return NotificationResult(False, f"No invoice action for payment status {payment_status}")

        if action == "payment":
            ok, status, body = self._api("GET", f"/invoices/{invoice_id}")
            if not ok:
                return NotificationResult(False, f"Invoice lookup failed: {body}", retryable=_is_retryable(status))
            inv = body["invoice"]
            balance = inv.get("balance", amount)
            if not balance:
                return NotificationResult(True, reference=invoice_id)
            ok, status, body = self._api("POST", "/customerpayments", json={
                "customer_id": inv["customer_id"],
                "payment_mode": "cash",
                "amount": balance,
                "invoices": [{"invoice_id": invoice_id, "amount_applied": balance}],
            })
        else:
            ok, status, body = self._api("POST", f"/invoices/{invoice_id}/status/{action}")

        if not ok:
            return NotificationResult(False, f"Invoice status sync failed: {body}", retryable=_is_retryable(status))
        return NotificationResult(True, reference=invoice_id)


def email_sink() -> EmailSink:
    return EmailSink()


def whatsapp_sink() -> WhatsAppSink:
    return WhatsAppSink.from_config(current_app.config)


def invoice_sink() -> InvoiceSink:
    return InvoiceSink.from_config(current_app.config)


# ---------- message text ----------

_TICKET_TEXT = {
    "en": "Hi {name}, your booking for {service} on {date} at {time} is confirmed. "
          "Visitors: {visitors}. Booking ref: {ref}.",
    "ar": "مرحبا {name}، تم تأكيد حجزك لـ {service} يوم {date} الساعة {time}. "
          "عدد الزوار: {visitors}. رقم الحجز: {ref}.",
}

_RESCHEDULE_TEXT = {
    "en": "Hi {name}, your booking for {service} has moved to {date} at {time}. Booking ref: {ref}.",
    "ar": "مرحبا {name}، تم تغيير موعد حجزك لـ {service} إلى يوم {date} الساعة {time}. رقم الحجز: {ref}.",
}


def ticket_text(booking, slot, service, rescheduled: bool = False) -> str:
    templates = _RESCHEDULE_TEXT if rescheduled else _TICKET_TEXT
    template = templates.get(booking.language) or templates["en"]
    return template.format(
        name=booking.customer_name,
        service=service.name,
        date=slot.start_time.strftime("%Y-%m-%d"),
        time=slot.start_time.strftime("%H:%M"),
        visitors=booking.visitor_count,
        ref=booking.id[:8].upper(),
    )
