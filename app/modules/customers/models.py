from app.database.database import Base
from sqlalchemy import Column, String, Boolean, Uuid
from uuid import uuid4
from app.common.mixins import BusinessMixin, TimestampMixin


class Customer(Base, BusinessMixin, TimestampMixin):
    __tablename__ = "customers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False)
    tax_id = Column(String(50), nullable=True)
    email = Column(String(100), nullable=True)

    # Dirección
    street_address = Column(String(200), nullable=True)
    city = Column(String(100), nullable=True)
    postal_code = Column(String(20), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)

    def snapshot_address(self):
        """Dirección en una línea: partes no vacías unidas por ', ', o None"""
        parts = [p for p in (self.street_address, self.city, self.postal_code) if p]
        return ", ".join(parts) if parts else None
