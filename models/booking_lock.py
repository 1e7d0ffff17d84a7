from datetime import datetime
from models.db import db, new_id

class BookingLock(db.Model):
    __tablename__ = "booking_locks"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    slot_id = db.Column(db.String(36), db.ForeignKey("slots.id"), nullable=False, index=True)

    # owner: user id when authenticated, otherwise an anonymous checkout session
    session_id = db.Column(db.String(120), nullable=False, index=True)
    reserved_capacity = db.Column(db.Integer, nullable=False)
    lock_expires_at = db.Column(db.DateTime, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint("reserved_capacity >= 1", name="ck_lock_reserved_capacity"),
        db.Index("ix_booking_locks_slot_expires", "slot_id", "lock_expires_at"),
    )
