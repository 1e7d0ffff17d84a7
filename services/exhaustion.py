import logging
from datetime import datetime

from sqlalchemy.dialects import postgresql, sqlite

from models import db
from models.package_exhaustion_notification import PackageExhaustionNotification
from models.package_subscription import PackageSubscription
from models.db import new_id

log = logging.getLogger(__name__)

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def record_exhaustion(pairs, now: datetime | None = None) -> list:
    """
    Record that each (subscription_id, service_id) pair ran out.

    Relies on the unique constraint instead of a pre-check: a pair that was
    already recorded, concurrently or earlier, is skipped by the database.
    Returns the pairs that were newly recorded.
    """
    if not pairs:
        return []

    dialect = db.session.get_bind().dialect.name
    insert = _INSERTS.get(dialect)
    if insert is None:
        raise RuntimeError(f"Exhaustion notifications are not supported on {dialect}")

    now = now or datetime.utcnow()
    recorded = []
    for subscription_id, service_id in pairs:
        stmt = (
            insert(PackageExhaustionNotification)
            .values(id=new_id(), subscription_id=subscription_id, service_id=service_id, notified_at=now)
            .on_conflict_do_nothing(index_elements=["subscription_id", "service_id"])
        )
        result = db.session.execute(stmt)
        if result.rowcount:
            recorded.append((subscription_id, service_id))
            log.info("Package exhausted: subscription %s service %s", subscription_id, service_id)
    return recorded


def list_exhaustion_notifications(tenant_id: str, limit: int = 200) -> list:
    rows = (
        db.session.query(PackageExhaustionNotification, PackageSubscription)
        .join(PackageSubscription, PackageSubscription.id == PackageExhaustionNotification.subscription_id)
        .filter(PackageSubscription.tenant_id == tenant_id)
        .order_by(PackageExhaustionNotification.notified_at.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": n.id,
            "subscription_id": n.subscription_id,
            "service_id": n.service_id,
            "customer_id": sub.customer_id,
            "package_id": sub.package_id,
            "notified_at": n.notified_at.isoformat(),
        }
        for n, sub in rows
    ]
