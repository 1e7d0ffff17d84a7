from datetime import datetime
from models.db import db, new_id

class ServicePackage(db.Model):
    __tablename__ = "service_packages"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tenant_id = db.Column(db.String(36), db.ForeignKey("tenants.id"), nullable=False, index=True)

    name = db.Column(db.String(160), nullable=False)
    total_price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    services = db.relationship("PackageService", back_populates="package", lazy="selectin")


class PackageService(db.Model):
    __tablename__ = "package_services"

    id = db.Column(db.Integer, primary_key=True)
    package_id = db.Column(db.String(36), db.ForeignKey("service_packages.id"), nullable=False, index=True)
    service_id = db.Column(db.String(36), db.ForeignKey("services.id"), nullable=False, index=True)
    capacity_total = db.Column(db.Integer, nullable=False)  # visitor tickets for this service

    package = db.relationship("ServicePackage", back_populates="services")

    __table_args__ = (
        db.CheckConstraint("capacity_total >= 1", name="ck_package_service_capacity"),
        db.UniqueConstraint("package_id", "service_id", name="uq_package_service"),
    )
