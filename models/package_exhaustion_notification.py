from datetime import datetime
from models.db import db, new_id

class PackageExhaustionNotification(db.Model):
    __tablename__ = "package_exhaustion_notifications"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    subscription_id = db.Column(
        db.String(36), db.ForeignKey("package_subscriptions.id"), nullable=False
    )
    service_id = db.Column(db.String(36), db.ForeignKey("services.id"), nullable=False)
    notified_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        # one row per pair; inserts rely on this instead of a pre-check
        db.UniqueConstraint("subscription_id", "service_id", name="uq_exhaustion_subscription_service"),
    )
