from app.database.database import Base
from sqlalchemy import Column, Integer, String, Boolean, Enum, Uuid
from uuid import uuid4
from app.common.mixins import TimestampMixin
import enum


class BusinessType(enum.Enum):
    LICENSED_DEALER = "licensed_dealer"  # Osek murshe
    EXEMPT_DEALER = "exempt_dealer"      # Osek patur, no cobra IVA
    LIMITED_COMPANY = "limited_company"


class Business(Base, TimestampMixin):
    __tablename__ = "businesses"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False)
    business_type = Column(
        Enum(BusinessType, name="business_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )

    # Numeración de documentos
    invoice_number_prefix = Column(String(20), nullable=True)
    starting_invoice_number = Column(Integer, nullable=False, default=1)

    # Basis points: 1700 = 17.00%
    default_vat_rate = Column(Integer, nullable=False, default=1700)
    is_active = Column(Boolean, nullable=False, default=True)

    @property
    def is_exempt_dealer(self) -> bool:
        return self.business_type == BusinessType.EXEMPT_DEALER
