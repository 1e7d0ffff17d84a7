"""
Post-commit delivery tasks.

Tasks are acked late, so a worker crash redelivers them. Each task re-reads
its rows and skips work that is already recorded as done. Only
``DependencyFailure`` (a retryable sink failure) triggers a retry.
"""
from celery import shared_task
from celery.utils.log import get_task_logger

from models import db
from models.booking import Booking
from models.customer import Customer
from models.package import ServicePackage
from models.package_subscription import PackageSubscription
from models.service import Service
from models.slot import Slot
from models.tenant import Tenant
from services.errors import DependencyFailure
from services.notifications import email_sink, invoice_sink, ticket_text, whatsapp_sink
from services.tickets import render_ticket_pdf

logger = get_task_logger(__name__)

RETRY_OPTIONS = dict(
    bind=True,
    acks_late=True,
    autoretry_for=(DependencyFailure,),
    retry_backoff=True,
    retry_backoff_max=600,
    max_retries=5,
)


def _finish(task_name: str, entity_id: str, results: dict) -> dict:
    for channel, result in results.items():
        if not result.success:
            logger.warning("%s %s: %s delivery failed: %s", task_name, entity_id, channel, result.error)

    delivered = any(r.success for r in results.values())
    if not delivered and any(r.retryable for r in results.values()):
        raise DependencyFailure(f"{task_name} failed for {entity_id}")

    return {"success": delivered, "channels": {k: r.to_dict() for k, r in results.items()}}


@shared_task(name="bookings.send_ticket", **RETRY_OPTIONS)
def send_booking_ticket(self, booking_id: str, rescheduled: bool = False) -> dict:
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        logger.warning("send_ticket: booking %s not found", booking_id)
        return {"success": False, "error": "booking_not_found"}

    whatsapp = whatsapp_sink()
    email = email_sink()
    send_whatsapp = whatsapp.configured() and bool(booking.customer_phone)
    send_email = email.configured() and bool(booking.customer_email)
    if not (send_whatsapp or send_email):
        logger.info("send_ticket: no delivery channel for booking %s", booking_id)
        return {"success": False, "error": "no_channel_configured"}

    slot = db.session.get(Slot, booking.slot_id)
    service = db.session.get(Service, booking.service_id)
    tenant = db.session.get(Tenant, booking.tenant_id)

    pdf = render_ticket_pdf(booking, slot, service, tenant)
    filename = f"ticket-{booking.id[:8]}.pdf"
    text = ticket_text(booking, slot, service, rescheduled=rescheduled)

    results = {}
    if send_whatsapp:
        results["whatsapp"] = whatsapp.send({
            "to": booking.customer_phone,
            "text": text,
            "document": (filename, pdf, "application/pdf"),
        })
    if send_email:
        results["email"] = email.send({
            "to": booking.customer_email,
            "subject": f"Your booking ticket - {tenant.name}",
            "body": text,
            "attachments": [(filename, pdf, "application/pdf")],
        })

    return _finish("send_ticket", booking_id, results)


@shared_task(name="bookings.create_invoice", **RETRY_OPTIONS)
def create_booking_invoice(self, booking_id: str) -> dict:
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        return {"success": False, "error": "booking_not_found"}
    if booking.invoice_id:
        return {"success": True, "invoice_id": booking.invoice_id}
    if booking.paid_quantity == 0 or not booking.total_price:
        # fully covered by a package
        return {"success": False, "error": "nothing_to_invoice"}

    sink = invoice_sink()
    if not sink.configured():
        return {"success": False, "error": "invoicing_not_configured"}

    service = db.session.get(Service, booking.service_id)
    result = sink.send({
        "customer_name": booking.customer_name,
        "customer_email": booking.customer_email,
        "reference": booking.id,
        "line_items": [{
            "name": service.name,
            "description": f"{booking.paid_quantity} ticket(s)",
            "rate": float(booking.total_price),
            "quantity": 1,
        }],
        "notes": booking.notes,
    })
    out = _finish("create_invoice", booking_id, {"invoice": result})

    if result.success:
        booking.invoice_id = result.reference
        db.session.commit()
        logger.info("Invoice %s created for booking %s", result.reference, booking_id)
    return out


@shared_task(name="bookings.sync_invoice_status", **RETRY_OPTIONS)
def sync_invoice_status(self, booking_id: str) -> dict:
    booking = db.session.get(Booking, booking_id)
    if booking is None or not booking.invoice_id:
        return {"success": False, "error": "no_invoice"}

    sink = invoice_sink()
    if not sink.configured():
        return {"success": False, "error": "invoicing_not_configured"}

    result = sink.update_status(booking.invoice_id, booking.payment_status, float(booking.total_price or 0))
    return _finish("sync_invoice_status", booking_id, {"invoice": result})


@shared_task(name="packages.create_subscription_invoice", **RETRY_OPTIONS)
def create_subscription_invoice(self, subscription_id: str) -> dict:
    subscription = db.session.get(PackageSubscription, subscription_id)
    if subscription is None:
        return {"success": False, "error": "subscription_not_found"}
    if subscription.invoice_id:
        return {"success": True, "invoice_id": subscription.invoice_id}

    sink = invoice_sink()
    if not sink.configured():
        return {"success": False, "error": "invoicing_not_configured"}

    package = db.session.get(ServicePackage, subscription.package_id)
    customer = db.session.get(Customer, subscription.customer_id)
    result = sink.send({
        "customer_name": customer.name,
        "customer_email": customer.email,
        "reference": subscription.id,
        "line_items": [{"name": package.name, "rate": float(package.total_price), "quantity": 1}],
    })
    out = _finish("create_subscription_invoice", subscription_id, {"invoice": result})

    if result.success:
        subscription.invoice_id = result.reference
        db.session.commit()
    return out
