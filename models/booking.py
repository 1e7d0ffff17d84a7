from datetime import datetime
from models.db import db, new_id

BOOKING_STATUSES = ("pending", "confirmed", "checked_in", "completed", "cancelled")
PAYMENT_STATUSES = ("unpaid", "awaiting_payment", "paid", "paid_manual", "refunded")

class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.String(36), primary_key=True, default=new_id)

    tenant_id = db.Column(db.String(36), db.ForeignKey("tenants.id"), nullable=False, index=True)
    service_id = db.Column(db.String(36), db.ForeignKey("services.id"), nullable=False, index=True)
    slot_id = db.Column(db.String(36), db.ForeignKey("slots.id"), nullable=False, index=True)
    customer_id = db.Column(db.String(36), db.ForeignKey("customers.id"), nullable=True, index=True)

    customer_name = db.Column(db.String(160), nullable=False)
    customer_phone = db.Column(db.String(30), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)

    visitor_count = db.Column(db.Integer, nullable=False)
    adult_count = db.Column(db.Integer, nullable=False)
    child_count = db.Column(db.Integer, nullable=False, default=0)
    total_price = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    status = db.Column(db.String(20), nullable=False, default="pending")
    payment_status = db.Column(db.String(20), nullable=False, default="unpaid")

    package_covered_quantity = db.Column(db.Integer, nullable=False, default=0)
    paid_quantity = db.Column(db.Integer, nullable=False, default=0)
    package_subscription_id = db.Column(
        db.String(36), db.ForeignKey("package_subscriptions.id"), nullable=True, index=True
    )

    offer_id = db.Column(db.String(36), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    language = db.Column(db.String(5), nullable=False, default="en")
    created_by_user_id = db.Column(db.String(36), nullable=True)
    invoice_id = db.Column(db.String(64), nullable=True)

    # set once by the ticket scan at the gate
    qr_scanned = db.Column(db.Boolean, nullable=False, default=False)
    qr_scanned_at = db.Column(db.DateTime, nullable=True)
    qr_scanned_by_user_id = db.Column(db.String(36), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    allocations = db.relationship("BookingPackageAllocation", back_populates="booking", lazy="selectin")

    __table_args__ = (
        db.CheckConstraint("visitor_count = adult_count + child_count", name="ck_booking_visitor_split"),
        db.CheckConstraint(
            "visitor_count = package_covered_quantity + paid_quantity",
            name="ck_booking_coverage_split",
        ),
        db.CheckConstraint(
            "package_covered_quantity >= 0 AND paid_quantity >= 0",
            name="ck_booking_coverage_non_negative",
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "service_id": self.service_id,
            "slot_id": self.slot_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "visitor_count": self.visitor_count,
            "adult_count": self.adult_count,
            "child_count": self.child_count,
            "total_price": float(self.total_price or 0),
            "status": self.status,
            "payment_status": self.payment_status,
            "package_covered_quantity": self.package_covered_quantity,
            "paid_quantity": self.paid_quantity,
            "package_subscription_id": self.package_subscription_id,
            "package_allocations": [
                {"subscription_id": a.subscription_id, "quantity": a.quantity}
                for a in self.allocations
            ],
            "offer_id": self.offer_id,
            "notes": self.notes,
            "language": self.language,
            "qr_scanned": self.qr_scanned,
            "qr_scanned_at": self.qr_scanned_at.isoformat() if self.qr_scanned_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
        }


class BookingPackageAllocation(db.Model):
    __tablename__ = "booking_package_allocations"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    booking_id = db.Column(db.String(36), db.ForeignKey("bookings.id"), nullable=False, index=True)
    subscription_id = db.Column(
        db.String(36), db.ForeignKey("package_subscriptions.id"), nullable=False, index=True
    )
    service_id = db.Column(db.String(36), db.ForeignKey("services.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    booking = db.relationship("Booking", back_populates="allocations")

    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_allocation_quantity"),
        db.UniqueConstraint("booking_id", "subscription_id", name="uq_allocation_booking_subscription"),
    )
