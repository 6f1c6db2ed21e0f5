"""
Lecturas de negocios usadas por la facturación.
"""
from typing import Optional
from uuid import UUID
from sqlalchemy.orm import Session

from .models import Business


class BusinessCRUD:

    @staticmethod
    def get_by_id(db: Session, business_id: UUID) -> Optional[Business]:
        """Obtener negocio por ID."""
        return db.query(Business).filter(Business.id == business_id).first()
