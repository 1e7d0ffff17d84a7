from datetime import datetime
from models.db import db, new_id

class PackageSubscription(db.Model):
    __tablename__ = "package_subscriptions"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tenant_id = db.Column(db.String(36), db.ForeignKey("tenants.id"), nullable=False, index=True)
    customer_id = db.Column(db.String(36), db.ForeignKey("customers.id"), nullable=False, index=True)
    package_id = db.Column(db.String(36), db.ForeignKey("service_packages.id"), nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default="active")  # active, cancelled
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    subscribed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    invoice_id = db.Column(db.String(64), nullable=True)

    usage = db.relationship("PackageSubscriptionUsage", back_populates="subscription", lazy="selectin")

    __table_args__ = (
        db.Index("ix_package_subscriptions_customer_active", "customer_id", "status", "is_active"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "customer_id": self.customer_id,
            "package_id": self.package_id,
            "status": self.status,
            "is_active": self.is_active,
            "subscribed_at": self.subscribed_at.isoformat() if self.subscribed_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "usage": [u.to_dict() for u in self.usage],
        }


class PackageSubscriptionUsage(db.Model):
    __tablename__ = "package_subscription_usage"

    id = db.Column(db.Integer, primary_key=True)
    subscription_id = db.Column(
        db.String(36), db.ForeignKey("package_subscriptions.id"), nullable=False, index=True
    )
    service_id = db.Column(db.String(36), db.ForeignKey("services.id"), nullable=False, index=True)

    original_quantity = db.Column(db.Integer, nullable=False)
    used_quantity = db.Column(db.Integer, nullable=False, default=0)
    # Only services/capacity.py writes this column
    remaining_quantity = db.Column(db.Integer, nullable=False)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    subscription = db.relationship("PackageSubscription", back_populates="usage")

    __table_args__ = (
        db.UniqueConstraint("subscription_id", "service_id", name="uq_usage_subscription_service"),
        db.CheckConstraint(
            "remaining_quantity = original_quantity - used_quantity",
            name="ck_usage_ledger_balance",
        ),
        db.CheckConstraint(
            "remaining_quantity >= 0 AND remaining_quantity <= original_quantity",
            name="ck_usage_remaining_bounds",
        ),
    )

    def to_dict(self) -> dict:
        return {
            "service_id": self.service_id,
            "original_quantity": self.original_quantity,
            "used_quantity": self.used_quantity,
            "remaining_quantity": self.remaining_quantity,
        }
