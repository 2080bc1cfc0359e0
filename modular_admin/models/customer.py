from datetime import datetime
from modular_admin import db


class Customer(db.Model):
    __tablename__ = "customer"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenant.id"), nullable=True, index=True)
    customer_code = db.Column(db.String(32), nullable=False)
    full_name = db.Column(db.String(200), nullable=False)
    company = db.Column(db.String(200))
    email = db.Column(db.String(120))
    phone = db.Column(db.String(50))
    credit_limit = db.Column(db.Numeric(12, 2))
    status = db.Column(db.String(16), default="active", nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "customer_code", name="uq_customer_tenant_code"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "customer_code": self.customer_code,
            "full_name": self.full_name,
            "company": self.company,
            "email": self.email,
            "phone": self.phone,
            "credit_limit": float(self.credit_limit) if self.credit_limit is not None else None,
            "status": self.status,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Customer {self.customer_code}>"
