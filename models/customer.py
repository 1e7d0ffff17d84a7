from datetime import datetime
from models.db import db, new_id

class Customer(db.Model):
    __tablename__ = "customers"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tenant_id = db.Column(db.String(36), db.ForeignKey("tenants.id"), nullable=False, index=True)

    name = db.Column(db.String(160), nullable=False)
    phone = db.Column(db.String(30), nullable=False)  # normalized E.164
    email = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "phone", name="uq_customer_tenant_phone"),
    )
