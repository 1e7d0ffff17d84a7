from datetime import datetime
from models.db import db, new_id

class Slot(db.Model):
    __tablename__ = "slots"

    id = db.Column(db.String(36), primary_key=True, default=new_id)

    tenant_id = db.Column(db.String(36), db.ForeignKey("tenants.id"), nullable=False, index=True)
    service_id = db.Column(db.String(36), db.ForeignKey("services.id"), nullable=False, index=True)
    start_time = db.Column(db.DateTime, nullable=False, index=True)
    end_time = db.Column(db.DateTime, nullable=False)

    total_capacity = db.Column(db.Integer, nullable=False)
    # Only services/booking_service.py writes this column
    remaining_capacity = db.Column(db.Integer, nullable=False)
    is_available = db.Column(db.Boolean, default=True, nullable=False)

    # Bumped by every capacity-affecting transaction to claim the row
    version = db.Column(db.Integer, nullable=False, default=1, server_default="1")

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint("total_capacity >= 0", name="ck_slot_total_capacity"),
        db.CheckConstraint(
            "remaining_capacity >= 0 AND remaining_capacity <= total_capacity",
            name="ck_slot_remaining_capacity",
        ),
        db.UniqueConstraint("service_id", "start_time", "end_time", name="uq_service_timeslot"),
    )
