"""
Lecturas de clientes usadas por la facturación.
"""
from typing import Optional
from uuid import UUID
from sqlalchemy.orm import Session

from .models import Customer


class CustomerCRUD:

    @staticmethod
    def get_by_id(db: Session, customer_id: UUID, business_id: UUID, lock: bool = False) -> Optional[Customer]:
        """
        Obtener cliente por ID dentro del negocio.

        Con lock=True toma un bloqueo compartido (FOR SHARE) para que una
        desactivación concurrente espere al commit de la transacción actual.
        """
        query = db.query(Customer).filter(
            Customer.id == customer_id,
            Customer.business_id == business_id
        )
        if lock:
            query = query.with_for_update(read=True)
        return query.first()
