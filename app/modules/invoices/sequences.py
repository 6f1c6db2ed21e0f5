"""
Numeración secuencial de documentos

Cada (negocio, grupo de secuencia) tiene una fila en invoice_sequences. El
número se reclama con un único INSERT ... ON CONFLICT DO UPDATE que la base
serializa por clave: no hay ventana entre leer y escribir.

El contador se escribe dentro de la transacción del llamador: un rollback
revierte también el incremento. Los huecos se toleran; dos facturas con el
mismo número no.
"""

from typing import NamedTuple
from uuid import UUID
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.dialects import postgresql, sqlite

from app.modules.invoices.models import InvoiceSequence, DocumentType, SequenceGroup

logger = logging.getLogger(__name__)


SEQUENCE_GROUP_MAP = {
    DocumentType.TAX_INVOICE: SequenceGroup.TAX_DOCUMENT,
    DocumentType.TAX_INVOICE_RECEIPT: SequenceGroup.TAX_DOCUMENT,
    DocumentType.CREDIT_NOTE: SequenceGroup.CREDIT_NOTE,
    DocumentType.RECEIPT: SequenceGroup.RECEIPT,
}

# Dialectos con INSERT ... ON CONFLICT ... RETURNING
_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class AssignedNumber(NamedTuple):
    sequence_number: int
    full_number: str


def document_type_to_sequence_group(document_type: DocumentType) -> SequenceGroup:
    return SEQUENCE_GROUP_MAP[document_type]


def format_full_number(sequence_number: int, prefix: str = "") -> str:
    """Número con ancho mínimo 4 ('0001'); con prefijo: 'INV-0001'. Nunca se trunca."""
    padded = f"{sequence_number:04d}"
    return f"{prefix}-{padded}" if prefix else padded


def assign_invoice_number(
    db: Session,
    business_id: UUID,
    document_type: DocumentType,
    prefix: str,
    seed_number: int
) -> AssignedNumber:
    """
    Asignar el siguiente número dentro de la transacción abierta del llamador

    La primera llamada para (negocio, grupo) inserta next_number = seed + 1;
    las siguientes lo incrementan en 1. El número asignado es siempre
    next_number devuelto - 1. No hace commit.

    Args:
        db: Sesión con la transacción de finalización en curso
        business_id: Negocio dueño del contador
        document_type: Tipo de documento (determina el grupo)
        prefix: Prefijo configurado del negocio ('' para ninguno)
        seed_number: Número inicial configurado del negocio

    Returns:
        AssignedNumber(sequence_number, full_number)
    """
    group = document_type_to_sequence_group(document_type)

    insert = _UPSERT_DIALECTS.get(db.get_bind().dialect.name)
    if insert is not None:
        next_number = _upsert_next_number(db, insert, business_id, group, seed_number)
    else:
        next_number = _locked_next_number(db, business_id, group, seed_number)

    sequence_number = next_number - 1
    full_number = format_full_number(sequence_number, prefix or "")

    logger.debug(f"Assigned {full_number} ({group.value}) for business {business_id}")
    return AssignedNumber(sequence_number, full_number)


def _upsert_next_number(db: Session, insert, business_id: UUID, group: SequenceGroup, seed_number: int) -> int:
    stmt = insert(InvoiceSequence).values(
        business_id=business_id,
        sequence_group=group,
        next_number=seed_number + 1
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[InvoiceSequence.business_id, InvoiceSequence.sequence_group],
        set_={
            "next_number": InvoiceSequence.next_number + 1,
            "updated_at": func.now()
        }
    ).returning(InvoiceSequence.next_number)

    return db.execute(stmt).scalar_one()


def _locked_next_number(db: Session, business_id: UUID, group: SequenceGroup, seed_number: int) -> int:
    # Sin upsert nativo: bloqueo de fila (SELECT ... FOR UPDATE) dentro de la misma transacción
    sequence = db.query(InvoiceSequence).filter(
        InvoiceSequence.business_id == business_id,
        InvoiceSequence.sequence_group == group
    ).with_for_update().first()

    if sequence is None:
        # Un insert concurrente para la misma clave choca con la PK y aborta la transacción
        sequence = InvoiceSequence(
            business_id=business_id,
            sequence_group=group,
            next_number=seed_number + 1
        )
        db.add(sequence)
    else:
        sequence.next_number = InvoiceSequence.next_number + 1

    db.flush()
    db.refresh(sequence, ["next_number"])
    return sequence.next_number
