"""
Tests para el módulo de Facturación

Cubren:
- Numeración: formato, grupos independientes, asignación concurrente
- CRUD de borradores con scoping por business_id
- Finalización: cada precondición, orden de numeración, snapshot del cliente,
  recálculo de montos y atomicidad ante errores
- Endpoints HTTP: códigos de estado y cuerpos de error

Los tests de PostgreSQL solo corren si TEST_POSTGRES_URL está definida.
"""

import os
import threading
import pytest
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError
from sqlalchemy import inspect
from sqlalchemy.orm import sessionmaker

from app.common.exceptions import (
    NotFoundError, NotDraftError, MissingCustomerError, CustomerNotFoundError,
    CustomerInactiveError, NoLineItemsError, InvalidInvoiceDateError, InvalidVatRateError
)
from app.database.database import Base, build_engine
from app.modules.businesses.models import Business, BusinessType
from app.modules.customers.models import Customer
from app.modules.invoices import service as service_module
from app.modules.invoices.crud import InvoiceCrud
from app.modules.invoices.models import (
    Invoice, InvoiceItem, InvoiceSequence, DocumentType, SequenceGroup, InvoiceStatus
)
from app.modules.invoices.schemas import InvoiceCreate, InvoiceUpdate, InvoiceItemCreate
from app.modules.invoices.sequences import (
    assign_invoice_number, format_full_number, document_type_to_sequence_group
)
from app.modules.invoices.service import InvoiceService, build_item_row


# ===== HELPERS =====

def item_data(position=0, **overrides):
    """Ítem de ejemplo: 1.5 × 3333 con 33.33% de descuento → 3333 + 567 de IVA"""
    data = {
        "description": "Consultoría",
        "quantity": "1.5",
        "unit_price_agora": 3333,
        "discount_percent": "33.33",
        "vat_rate_basis_points": 1700,
        "position": position,
    }
    data.update(overrides)
    return data


def create_draft(db, business_id, customer_id=None, items=None, **fields):
    payload = {"document_type": "tax_invoice", "customer_id": customer_id, **fields}
    if items is not None:
        payload["items"] = items
    return InvoiceService(db).create_draft(business_id, InvoiceCreate(**payload))


def finalize(db, business_id, invoice_id, invoice_date=None):
    return InvoiceService(db).finalize(business_id, invoice_id, invoice_date)


@pytest.fixture
def ready_draft(db_session, business, customer):
    """Borrador listo para finalizar"""
    return create_draft(db_session, business.id, customer.id, items=[item_data()])


@pytest.fixture
def fixed_today(monkeypatch):
    today = date(2026, 3, 10)
    monkeypatch.setattr(service_module, "_utc_today", lambda: today)
    return today


# ===== TESTS DE NUMERACIÓN =====

class TestSequenceFormatting:
    """Tests para format_full_number y el mapeo de grupos"""

    def test_prefix_and_padding(self):
        assert format_full_number(1, "INV") == "INV-0001"
        assert format_full_number(2, "INV") == "INV-0002"

    def test_without_prefix(self):
        assert format_full_number(1, "") == "0001"
        assert format_full_number(42) == "0042"

    def test_never_truncated(self):
        assert format_full_number(12345, "INV") == "INV-12345"

    def test_group_mapping(self):
        assert document_type_to_sequence_group(DocumentType.TAX_INVOICE) == SequenceGroup.TAX_DOCUMENT
        assert document_type_to_sequence_group(DocumentType.TAX_INVOICE_RECEIPT) == SequenceGroup.TAX_DOCUMENT
        assert document_type_to_sequence_group(DocumentType.CREDIT_NOTE) == SequenceGroup.CREDIT_NOTE
        assert document_type_to_sequence_group(DocumentType.RECEIPT) == SequenceGroup.RECEIPT


class TestAssignInvoiceNumber:
    """Tests para assign_invoice_number"""

    def test_first_number_is_the_seed(self, db_session, business):
        assigned = assign_invoice_number(db_session, business.id, DocumentType.TAX_INVOICE, "INV", 1)
        db_session.commit()

        assert assigned.sequence_number == 1
        assert assigned.full_number == "INV-0001"

    def test_increments_by_one(self, db_session, business):
        numbers = [
            assign_invoice_number(db_session, business.id, DocumentType.TAX_INVOICE, "INV", 1).sequence_number
            for _ in range(3)
        ]
        db_session.commit()

        assert numbers == [1, 2, 3]
        sequence = db_session.query(InvoiceSequence).filter_by(business_id=business.id).one()
        assert sequence.next_number == 4

    def test_custom_seed(self, db_session, business):
        first = assign_invoice_number(db_session, business.id, DocumentType.TAX_INVOICE, "", 500)
        second = assign_invoice_number(db_session, business.id, DocumentType.TAX_INVOICE, "", 500)

        assert first.full_number == "0500"
        assert second.full_number == "0501"

    def test_invoice_and_invoice_receipt_share_a_counter(self, db_session, business):
        first = assign_invoice_number(db_session, business.id, DocumentType.TAX_INVOICE, "INV", 1)
        second = assign_invoice_number(db_session, business.id, DocumentType.TAX_INVOICE_RECEIPT, "INV", 1)

        assert (first.sequence_number, second.sequence_number) == (1, 2)

    def test_groups_are_independent(self, db_session, business):
        assign_invoice_number(db_session, business.id, DocumentType.TAX_INVOICE, "INV", 1)
        assign_invoice_number(db_session, business.id, DocumentType.TAX_INVOICE, "INV", 1)
        receipt = assign_invoice_number(db_session, business.id, DocumentType.RECEIPT, "INV", 1)
        credit = assign_invoice_number(db_session, business.id, DocumentType.CREDIT_NOTE, "INV", 1)

        assert receipt.sequence_number == 1
        assert credit.sequence_number == 1

    def test_businesses_are_independent(self, db_session, make_business):
        first = make_business(name="Uno")
        second = make_business(name="Dos")

        assign_invoice_number(db_session, first.id, DocumentType.TAX_INVOICE, "INV", 1)
        other = assign_invoice_number(db_session, second.id, DocumentType.TAX_INVOICE, "INV", 1)

        assert other.sequence_number == 1

    def test_rollback_reverts_the_increment(self, db_session, business):
        business_id = business.id
        assign_invoice_number(db_session, business_id, DocumentType.TAX_INVOICE, "INV", 1)
        db_session.commit()

        assign_invoice_number(db_session, business_id, DocumentType.TAX_INVOICE, "INV", 1)
        db_session.rollback()

        assigned = assign_invoice_number(db_session, business_id, DocumentType.TAX_INVOICE, "INV", 1)
        assert assigned.sequence_number == 2

    def test_concurrent_allocations_are_distinct_and_contiguous(self, session_factory, business):
        business_id = business.id
        workers = 8

        def allocate(_):
            db = session_factory()
            try:
                assigned = assign_invoice_number(db, business_id, DocumentType.TAX_INVOICE, "INV", 1)
                db.commit()
                return assigned.sequence_number
            finally:
                db.close()

        with ThreadPoolExecutor(max_workers=workers) as pool:
            numbers = list(pool.map(allocate, range(workers)))

        assert sorted(numbers) == list(range(1, workers + 1))


# ===== TESTS DE CRUD =====

class TestInvoiceCrud:
    """Tests para InvoiceCrud: scoping por negocio y reemplazo de ítems"""

    def _insert(self, db, business_id):
        crud = InvoiceCrud(db)
        invoice = crud.insert_invoice({
            "business_id": business_id,
            "document_type": DocumentType.TAX_INVOICE,
            "invoice_date": date(2026, 1, 1),
        })
        rows = [build_item_row(InvoiceItemCreate(**item_data(position=p))) for p in (0, 1)]
        crud.insert_items(invoice.id, rows)
        db.commit()
        return invoice.id

    def test_other_business_does_not_see_invoice(self, db_session, make_business):
        owner = make_business(name="Dueño")
        stranger = make_business(name="Otro")
        invoice_id = self._insert(db_session, owner.id)
        crud = InvoiceCrud(db_session)

        assert crud.find_invoice_by_id(invoice_id, stranger.id) is None
        assert crud.update_invoice(invoice_id, stranger.id, {"notes": "x"}) is None
        assert crud.delete_invoice(invoice_id, stranger.id) is None
        assert crud.find_invoice_by_id(invoice_id, owner.id) is not None

    def test_items_ordered_by_position(self, db_session, business):
        invoice_id = self._insert(db_session, business.id)
        items = InvoiceCrud(db_session).find_items_by_invoice_id(invoice_id)

        assert [item.position for item in items] == [0, 1]
        assert items[0].line_total_agora == 3333

    def test_replace_items_deletes_all_previous(self, db_session, business):
        invoice_id = self._insert(db_session, business.id)
        crud = InvoiceCrud(db_session)

        new_row = build_item_row(InvoiceItemCreate(**item_data(position=5, description="Nuevo")))
        crud.replace_items(invoice_id, [new_row])
        db_session.commit()

        items = crud.find_items_by_invoice_id(invoice_id)
        assert len(items) == 1
        assert items[0].position == 5
        assert items[0].description == "Nuevo"

    def test_touch_draft_only_matches_drafts(self, db_session, make_business):
        owner = make_business(name="Dueño")
        stranger = make_business(name="Otro")
        invoice_id = self._insert(db_session, owner.id)
        crud = InvoiceCrud(db_session)

        assert crud.touch_draft(invoice_id, owner.id) is True
        assert crud.touch_draft(invoice_id, stranger.id) is False

        crud.update_invoice(invoice_id, owner.id, {"status": InvoiceStatus.FINALIZED})
        db_session.commit()

        assert crud.touch_draft(invoice_id, owner.id) is False

    def test_delete_invoice_removes_items(self, db_session, business):
        invoice_id = self._insert(db_session, business.id)
        InvoiceCrud(db_session).delete_invoice(invoice_id, business.id)
        db_session.commit()

        assert db_session.query(InvoiceItem).filter_by(invoice_id=invoice_id).count() == 0
        assert db_session.query(Invoice).filter_by(id=invoice_id).count() == 0


class TestInvoiceModel:
    """Índices de la tabla invoices"""

    def test_business_date_index(self):
        indexes = {index.name: [c.name for c in index.columns] for index in Invoice.__table__.indexes}
        assert indexes["invoices_business_date_idx"] == ["business_id", "invoice_date"]

    def test_index_exists_in_database(self, engine):
        names = {index["name"] for index in inspect(engine).get_indexes("invoices")}
        assert "invoices_business_date_idx" in names


# ===== TESTS DE SCHEMAS =====

class TestInvoiceSchemas:
    """Tests para validaciones de entrada"""

    def test_duplicate_positions_rejected(self):
        with pytest.raises(ValidationError):
            InvoiceCreate(document_type="tax_invoice", items=[item_data(0), item_data(0)])

    @pytest.mark.parametrize("overrides", [
        {"quantity": "0"},
        {"unit_price_agora": -1},
        {"discount_percent": "100.01"},
        {"discount_percent": "-1"},
        {"vat_rate_basis_points": -5},
        {"description": "   "},
        {"unknown_field": 1},
    ])
    def test_invalid_item_rejected(self, overrides):
        with pytest.raises(ValidationError):
            InvoiceItemCreate(**item_data(**overrides))

    @pytest.mark.parametrize("overrides", [
        {"quantity": "1.00001"},
        {"quantity": "123456789012.5"},
        {"discount_percent": "0.004"},
        {"discount_percent": "12.345"},
    ])
    def test_more_precision_than_stored_rejected(self, overrides):
        with pytest.raises(ValidationError):
            InvoiceItemCreate(**item_data(**overrides))

    def test_update_cannot_null_required_fields(self):
        with pytest.raises(ValidationError):
            InvoiceUpdate(document_type=None)
        with pytest.raises(ValidationError):
            InvoiceUpdate(invoice_date=None)

    def test_update_tracks_sent_fields(self):
        update = InvoiceUpdate(customer_id=None)
        assert update.model_fields_set == {"customer_id"}


# ===== TESTS DE BORRADORES =====

class TestDraftService:
    """Tests para create/get/update/delete de borradores"""

    def test_create_with_items_computes_totals(self, db_session, business):
        response = create_draft(db_session, business.id, items=[item_data()])
        invoice = response.invoice

        assert invoice.status == "draft"
        assert invoice.sequence_number is None
        assert invoice.full_number is None
        assert invoice.currency == "ILS"
        assert invoice.subtotal_agora == 5000
        assert invoice.discount_agora == 1667
        assert invoice.total_excl_vat_agora == 3333
        assert invoice.vat_agora == 567
        assert invoice.total_incl_vat_agora == 3900
        assert len(response.items) == 1
        assert response.items[0].line_total_incl_vat_agora == 3900

    def test_draft_totals_match_finalized_totals(self, db_session, business, customer):
        """Con la precisión máxima de las columnas, borrador y factura final dan lo mismo"""
        draft = create_draft(
            db_session, business.id, customer.id,
            items=[item_data(quantity="1.2345", unit_price_agora=99999, discount_percent="12.34")]
        )
        final = finalize(db_session, business.id, draft.invoice.id)

        for field in ("subtotal_agora", "discount_agora", "total_excl_vat_agora", "vat_agora", "total_incl_vat_agora"):
            assert getattr(draft.invoice, field) == getattr(final.invoice, field)
        assert draft.items[0].line_total_agora == final.items[0].line_total_agora

    def test_create_without_items(self, db_session, business):
        response = create_draft(db_session, business.id)

        assert response.items == []
        assert response.invoice.total_incl_vat_agora == 0
        assert response.invoice.customer_id is None

    def test_invoice_date_defaults_to_utc_today(self, db_session, business, fixed_today):
        response = create_draft(db_session, business.id)
        assert response.invoice.invoice_date == fixed_today

    def test_get_from_other_business_is_not_found(self, db_session, business, make_business):
        response = create_draft(db_session, business.id)
        stranger = make_business(name="Otro")

        with pytest.raises(NotFoundError):
            InvoiceService(db_session).get_invoice(stranger.id, response.invoice.id)

    def test_update_only_sent_fields(self, db_session, business, customer):
        created = create_draft(db_session, business.id, customer.id, items=[item_data()], notes="antes")
        updated = InvoiceService(db_session).update_draft(
            business.id, created.invoice.id, InvoiceUpdate(internal_notes="interno")
        )

        assert updated.invoice.notes == "antes"
        assert updated.invoice.internal_notes == "interno"
        assert updated.invoice.customer_id == customer.id
        assert len(updated.items) == 1

    def test_explicit_null_clears_customer(self, db_session, business, customer):
        created = create_draft(db_session, business.id, customer.id)
        updated = InvoiceService(db_session).update_draft(
            business.id, created.invoice.id, InvoiceUpdate(customer_id=None)
        )

        assert updated.invoice.customer_id is None

    def test_update_items_replaces_and_recomputes(self, db_session, business):
        created = create_draft(db_session, business.id, items=[item_data(0), item_data(1)])
        new_items = [item_data(0, quantity="2", unit_price_agora=5000, discount_percent="0")]

        updated = InvoiceService(db_session).update_draft(
            business.id, created.invoice.id, InvoiceUpdate(items=new_items)
        )

        assert len(updated.items) == 1
        assert updated.invoice.subtotal_agora == 10000
        assert updated.invoice.vat_agora == 1700
        assert updated.invoice.total_incl_vat_agora == 11700

    def test_update_with_empty_items_zeroes_totals(self, db_session, business):
        created = create_draft(db_session, business.id, items=[item_data()])
        updated = InvoiceService(db_session).update_draft(
            business.id, created.invoice.id, InvoiceUpdate(items=[])
        )

        assert updated.items == []
        assert updated.invoice.subtotal_agora == 0
        assert updated.invoice.total_incl_vat_agora == 0

    def test_update_unknown_invoice(self, db_session, business):
        with pytest.raises(NotFoundError):
            InvoiceService(db_session).update_draft(business.id, uuid4(), InvoiceUpdate(notes="x"))

    def test_delete_draft(self, db_session, business):
        created = create_draft(db_session, business.id, items=[item_data()])
        service = InvoiceService(db_session)

        service.delete_draft(business.id, created.invoice.id)

        with pytest.raises(NotFoundError):
            service.get_invoice(business.id, created.invoice.id)
        assert db_session.query(InvoiceItem).filter_by(invoice_id=created.invoice.id).count() == 0


# ===== TESTS DE FINALIZACIÓN =====

class TestFinalize:
    """Tests para InvoiceService.finalize"""

    def test_finalize_assigns_number_and_snapshot(self, db_session, business, ready_draft):
        response = finalize(db_session, business.id, ready_draft.invoice.id)
        invoice = response.invoice

        assert invoice.status == "finalized"
        assert invoice.sequence_group == "tax_document"
        assert invoice.sequence_number == 1
        assert invoice.full_number == "INV-0001"
        assert invoice.issued_at is not None
        assert invoice.customer_name == "Cliente Uno"
        assert invoice.customer_tax_id == "514000000"
        assert invoice.customer_email == "cliente@example.com"
        assert invoice.customer_address == "Herzl 10, Tel Aviv, 6100000"
        assert invoice.total_incl_vat_agora == 3900

    def test_snapshot_address_skips_empty_parts(self, db_session, business, make_customer):
        customer = make_customer(business, street_address=None, city="Haifa", postal_code="")
        draft = create_draft(db_session, business.id, customer.id, items=[item_data()])

        invoice = finalize(db_session, business.id, draft.invoice.id).invoice
        assert invoice.customer_address == "Haifa"

    def test_snapshot_address_none_when_empty(self, db_session, business, make_customer):
        customer = make_customer(business, street_address=None, city=None, postal_code=None)
        draft = create_draft(db_session, business.id, customer.id, items=[item_data()])

        invoice = finalize(db_session, business.id, draft.invoice.id).invoice
        assert invoice.customer_address is None

    def test_consecutive_numbers(self, db_session, business, customer):
        first = create_draft(db_session, business.id, customer.id, items=[item_data()])
        second = create_draft(db_session, business.id, customer.id, items=[item_data()])

        assert finalize(db_session, business.id, first.invoice.id).invoice.full_number == "INV-0001"
        assert finalize(db_session, business.id, second.invoice.id).invoice.full_number == "INV-0002"

    def test_numbering_follows_finalization_order(self, db_session, business, customer):
        draft_a = create_draft(db_session, business.id, customer.id, items=[item_data()])
        draft_b = create_draft(db_session, business.id, customer.id, items=[item_data()])

        b = finalize(db_session, business.id, draft_b.invoice.id)
        a = finalize(db_session, business.id, draft_a.invoice.id)

        assert b.invoice.sequence_number == 1
        assert a.invoice.sequence_number == 2

    def test_receipt_uses_its_own_counter(self, db_session, business, customer):
        invoice = create_draft(db_session, business.id, customer.id, items=[item_data()])
        receipt = create_draft(
            db_session, business.id, customer.id, items=[item_data()], document_type="receipt"
        )

        finalize(db_session, business.id, invoice.invoice.id)
        result = finalize(db_session, business.id, receipt.invoice.id).invoice

        assert result.sequence_group == "receipt"
        assert result.full_number == "INV-0001"

    def test_business_without_prefix(self, db_session, make_business, make_customer):
        business = make_business(invoice_number_prefix=None, starting_invoice_number=1000)
        customer = make_customer(business)
        draft = create_draft(db_session, business.id, customer.id, items=[item_data()])

        assert finalize(db_session, business.id, draft.invoice.id).invoice.full_number == "1000"

    def test_recomputes_cached_amounts(self, db_session, business, ready_draft):
        invoice_id = ready_draft.invoice.id
        db_session.query(InvoiceItem).filter_by(invoice_id=invoice_id).update(
            {"line_total_agora": 1, "vat_amount_agora": 1, "line_total_incl_vat_agora": 2}
        )
        db_session.query(Invoice).filter_by(id=invoice_id).update({"total_incl_vat_agora": 2})
        db_session.commit()

        response = finalize(db_session, business.id, invoice_id)

        assert response.invoice.total_incl_vat_agora == 3900
        assert response.items[0].line_total_agora == 3333
        assert response.items[0].vat_amount_agora == 567

    def test_invoice_date_override(self, db_session, business, ready_draft, fixed_today):
        response = finalize(db_session, business.id, ready_draft.invoice.id, fixed_today)
        assert response.invoice.invoice_date == fixed_today

    def test_date_at_limit_is_accepted(self, db_session, business, ready_draft, fixed_today):
        limit = fixed_today + timedelta(days=7)
        response = finalize(db_session, business.id, ready_draft.invoice.id, limit)
        assert response.invoice.invoice_date == limit

    def test_past_date_is_accepted(self, db_session, business, ready_draft, fixed_today):
        response = finalize(db_session, business.id, ready_draft.invoice.id, fixed_today - timedelta(days=90))
        assert response.invoice.status == "finalized"

    def test_exempt_dealer_with_zero_rate(self, db_session, make_business, make_customer):
        business = make_business(business_type=BusinessType.EXEMPT_DEALER)
        customer = make_customer(business)
        draft = create_draft(
            db_session, business.id, customer.id, items=[item_data(vat_rate_basis_points=0)]
        )

        response = finalize(db_session, business.id, draft.invoice.id)
        assert response.invoice.vat_agora == 0
        assert response.invoice.total_incl_vat_agora == 3333


class TestFinalizePreconditions:
    """Cada precondición: error tipado, sin cambios, y la factura sigue en draft"""

    def _assert_untouched(self, db_session, business_id, invoice_id):
        db_session.expire_all()
        invoice = db_session.query(Invoice).filter_by(id=invoice_id).one()
        assert invoice.is_draft
        assert invoice.sequence_number is None
        assert invoice.full_number is None
        assert invoice.customer_name is None
        assert db_session.query(InvoiceSequence).filter_by(business_id=business_id).count() == 0

    def test_unknown_invoice(self, db_session, business):
        with pytest.raises(NotFoundError):
            finalize(db_session, business.id, uuid4())

    def test_other_business_invoice(self, db_session, make_business, ready_draft):
        stranger = make_business(name="Otro")
        with pytest.raises(NotFoundError):
            finalize(db_session, stranger.id, ready_draft.invoice.id)

    def test_missing_customer(self, db_session, business):
        draft = create_draft(db_session, business.id, items=[item_data()])

        with pytest.raises(MissingCustomerError) as exc_info:
            finalize(db_session, business.id, draft.invoice.id)

        assert exc_info.value.code == "missing_customer"
        self._assert_untouched(db_session, business.id, draft.invoice.id)

    def test_customer_from_other_business(self, db_session, business, make_business, make_customer):
        foreign = make_customer(make_business(name="Otro"))
        draft = create_draft(db_session, business.id, foreign.id, items=[item_data()])

        with pytest.raises(CustomerNotFoundError):
            finalize(db_session, business.id, draft.invoice.id)
        self._assert_untouched(db_session, business.id, draft.invoice.id)

    def test_inactive_customer(self, db_session, business, make_customer):
        inactive = make_customer(business, is_active=False)
        draft = create_draft(db_session, business.id, inactive.id, items=[item_data()])

        with pytest.raises(CustomerInactiveError):
            finalize(db_session, business.id, draft.invoice.id)
        self._assert_untouched(db_session, business.id, draft.invoice.id)

    def test_no_line_items(self, db_session, business, customer):
        draft = create_draft(db_session, business.id, customer.id)

        with pytest.raises(NoLineItemsError):
            finalize(db_session, business.id, draft.invoice.id)
        self._assert_untouched(db_session, business.id, draft.invoice.id)

    def test_date_too_far_in_future(self, db_session, business, ready_draft, fixed_today):
        with pytest.raises(InvalidInvoiceDateError) as exc_info:
            finalize(db_session, business.id, ready_draft.invoice.id, fixed_today + timedelta(days=8))

        assert exc_info.value.details["max_date"] == (fixed_today + timedelta(days=7)).isoformat()
        self._assert_untouched(db_session, business.id, ready_draft.invoice.id)

    def test_stored_date_too_far_in_future(self, db_session, business, customer, fixed_today):
        draft = create_draft(
            db_session, business.id, customer.id, items=[item_data()],
            invoice_date=fixed_today + timedelta(days=30)
        )

        with pytest.raises(InvalidInvoiceDateError):
            finalize(db_session, business.id, draft.invoice.id)

    def test_rate_outside_allowed_set(self, db_session, business, customer):
        draft = create_draft(
            db_session, business.id, customer.id,
            items=[item_data(0), item_data(1, vat_rate_basis_points=1800)]
        )

        with pytest.raises(InvalidVatRateError) as exc_info:
            finalize(db_session, business.id, draft.invoice.id)

        assert exc_info.value.details == {"position": 1, "vat_rate_basis_points": 1800}
        self._assert_untouched(db_session, business.id, draft.invoice.id)

    def test_exempt_dealer_cannot_charge_vat(self, db_session, make_business, make_customer):
        business = make_business(business_type=BusinessType.EXEMPT_DEALER)
        customer = make_customer(business)
        draft = create_draft(db_session, business.id, customer.id, items=[item_data()])

        with pytest.raises(InvalidVatRateError):
            finalize(db_session, business.id, draft.invoice.id)

    def test_failure_then_fix_then_success(self, db_session, business, make_customer):
        inactive = make_customer(business, is_active=False)
        draft = create_draft(db_session, business.id, inactive.id, items=[item_data()])

        with pytest.raises(CustomerInactiveError):
            finalize(db_session, business.id, draft.invoice.id)

        db_session.query(Customer).filter_by(id=inactive.id).update({"is_active": True})
        db_session.commit()

        response = finalize(db_session, business.id, draft.invoice.id)
        assert response.invoice.full_number == "INV-0001"

    def test_effect_failure_rolls_back_everything(self, db_session, business, ready_draft, monkeypatch):
        def broken_replace(self, invoice_id, rows):
            raise RuntimeError("write conflict")

        monkeypatch.setattr(InvoiceCrud, "replace_items", broken_replace)
        with pytest.raises(RuntimeError):
            finalize(db_session, business.id, ready_draft.invoice.id)

        self._assert_untouched(db_session, business.id, ready_draft.invoice.id)
        items = db_session.query(InvoiceItem).filter_by(invoice_id=ready_draft.invoice.id).all()
        assert len(items) == 1

        monkeypatch.undo()
        response = finalize(db_session, business.id, ready_draft.invoice.id)
        assert response.invoice.sequence_number == 1


class TestFinalizedIsFinal:
    """Una factura finalizada no vuelve a draft ni cambia de número"""

    @pytest.fixture
    def finalized(self, db_session, business, ready_draft):
        return finalize(db_session, business.id, ready_draft.invoice.id)

    def test_cannot_update(self, db_session, business, finalized):
        with pytest.raises(NotDraftError):
            InvoiceService(db_session).update_draft(business.id, finalized.invoice.id, InvoiceUpdate(notes="x"))

    def test_cannot_delete(self, db_session, business, finalized):
        with pytest.raises(NotDraftError):
            InvoiceService(db_session).delete_draft(business.id, finalized.invoice.id)

    def test_cannot_finalize_twice(self, db_session, business, finalized):
        with pytest.raises(NotDraftError) as exc_info:
            finalize(db_session, business.id, finalized.invoice.id)

        assert exc_info.value.code == "not_draft"
        current = InvoiceService(db_session).get_invoice(business.id, finalized.invoice.id)
        assert current.invoice.full_number == "INV-0001"
        assert current.invoice.status == "finalized"

    def test_later_edit_of_customer_does_not_change_snapshot(self, db_session, business, customer, finalized):
        db_session.query(Customer).filter_by(id=customer.id).update({"name": "Nombre Nuevo"})
        db_session.commit()

        current = InvoiceService(db_session).get_invoice(business.id, finalized.invoice.id)
        assert current.invoice.customer_name == "Cliente Uno"


class TestConcurrentFinalize:
    """Finalizaciones concurrentes dentro del mismo negocio"""

    def test_each_draft_gets_a_distinct_number(self, db_session, session_factory, business, customer):
        business_id = business.id
        drafts = [
            create_draft(db_session, business_id, customer.id, items=[item_data()]).invoice.id
            for _ in range(5)
        ]

        def run(invoice_id):
            db = session_factory()
            try:
                return finalize(db, business_id, invoice_id).invoice.sequence_number
            finally:
                db.close()

        with ThreadPoolExecutor(max_workers=5) as pool:
            numbers = list(pool.map(run, drafts))

        assert sorted(numbers) == [1, 2, 3, 4, 5]

    def test_same_draft_finalized_once(self, db_session, session_factory, business, customer, monkeypatch):
        """Dos transacciones leen el mismo borrador antes de que cualquiera escriba"""
        business_id = business.id
        invoice_id = create_draft(db_session, business_id, customer.id, items=[item_data()]).invoice.id

        both_read = threading.Barrier(2, timeout=10)
        original_touch = InvoiceCrud.touch_draft

        def touch_after_both_read(self, *args):
            both_read.wait()
            return original_touch(self, *args)

        monkeypatch.setattr(InvoiceCrud, "touch_draft", touch_after_both_read)

        def run(_):
            db = session_factory()
            try:
                return finalize(db, business_id, invoice_id).invoice.full_number
            except NotDraftError as e:
                return e
            finally:
                db.close()

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(run, range(2)))
        monkeypatch.undo()

        assert [r for r in results if isinstance(r, str)] == ["INV-0001"]
        assert len([r for r in results if isinstance(r, NotDraftError)]) == 1

        db_session.expire_all()
        stored = db_session.query(Invoice).filter_by(id=invoice_id).one()
        assert stored.sequence_number == 1
        assert stored.full_number == "INV-0001"
        sequence = db_session.query(InvoiceSequence).filter_by(business_id=business_id).one()
        assert sequence.next_number == 2


# ===== TESTS DE ENDPOINTS =====

class TestInvoiceEndpoints:
    """Tests HTTP del router /invoices"""

    @pytest.fixture
    def headers(self, business):
        return {"X-Business-ID": str(business.id)}

    def _create(self, client, headers, **payload):
        body = {"document_type": "tax_invoice", "items": [item_data()], **payload}
        response = client.post("/invoices/", json=body, headers=headers)
        assert response.status_code == 201
        return response.json()

    def test_missing_business_header(self, client):
        response = client.get(f"/invoices/{uuid4()}")

        assert response.status_code == 400
        assert response.json()["error"] == "missing_business_context"

    def test_invalid_business_header(self, client):
        response = client.get(f"/invoices/{uuid4()}", headers={"X-Business-ID": "no-es-uuid"})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_business_context"

    def test_health_needs_no_header(self, client):
        assert client.get("/health").status_code == 200

    def test_create_and_get(self, client, headers):
        created = self._create(client, headers, notes="hola")
        invoice_id = created["invoice"]["id"]

        response = client.get(f"/invoices/{invoice_id}", headers=headers)
        body = response.json()

        assert response.status_code == 200
        assert body["invoice"]["status"] == "draft"
        assert body["invoice"]["notes"] == "hola"
        assert body["invoice"]["total_incl_vat_agora"] == 3900
        assert len(body["items"]) == 1

    def test_get_unknown_is_404(self, client, headers):
        response = client.get(f"/invoices/{uuid4()}", headers=headers)

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_item_precision_beyond_columns_is_422(self, client, headers):
        body = {"document_type": "tax_invoice", "items": [item_data(discount_percent="0.004")]}
        response = client.post("/invoices/", json=body, headers=headers)

        assert response.status_code == 422

    def test_create_with_duplicate_positions_is_422(self, client, headers):
        body = {"document_type": "tax_invoice", "items": [item_data(0), item_data(0)]}
        response = client.post("/invoices/", json=body, headers=headers)

        assert response.status_code == 422

    def test_patch_items(self, client, headers):
        created = self._create(client, headers)
        invoice_id = created["invoice"]["id"]

        response = client.patch(
            f"/invoices/{invoice_id}",
            json={"items": [item_data(0, quantity="1", unit_price_agora=10000, discount_percent="0")]},
            headers=headers
        )

        assert response.status_code == 200
        assert response.json()["invoice"]["total_incl_vat_agora"] == 11700

    def test_delete(self, client, headers):
        created = self._create(client, headers)
        invoice_id = created["invoice"]["id"]

        response = client.delete(f"/invoices/{invoice_id}", headers=headers)
        assert response.status_code == 200
        assert response.json() == {"ok": True}

        assert client.get(f"/invoices/{invoice_id}", headers=headers).status_code == 404

    def test_finalize_without_customer_is_422(self, client, headers):
        created = self._create(client, headers)

        response = client.post(f"/invoices/{created['invoice']['id']}/finalize", headers=headers)

        assert response.status_code == 422
        assert response.json()["error"] == "missing_customer"
        assert "message" in response.json()

    def test_finalize_flow(self, client, headers, customer):
        created = self._create(client, headers, customer_id=str(customer.id))
        invoice_id = created["invoice"]["id"]

        response = client.post(f"/invoices/{invoice_id}/finalize", headers=headers)
        body = response.json()

        assert response.status_code == 200
        assert body["invoice"]["status"] == "finalized"
        assert body["invoice"]["full_number"] == "INV-0001"
        assert body["invoice"]["customer_name"] == "Cliente Uno"

        again = client.post(f"/invoices/{invoice_id}/finalize", headers=headers)
        assert again.status_code == 422
        assert again.json()["error"] == "not_draft"

        patch = client.patch(f"/invoices/{invoice_id}", json={"notes": "x"}, headers=headers)
        assert patch.status_code == 422
        assert patch.json()["error"] == "not_draft"

    def test_finalize_with_far_future_date(self, client, headers, customer):
        created = self._create(client, headers, customer_id=str(customer.id))
        future = (date.today() + timedelta(days=60)).isoformat()

        response = client.post(
            f"/invoices/{created['invoice']['id']}/finalize",
            json={"invoice_date": future},
            headers=headers
        )

        assert response.status_code == 422
        assert response.json()["error"] == "invalid_invoice_date"
        assert response.json()["details"]["invoice_date"] == future

    def test_other_business_cannot_see_invoice(self, client, headers, make_business):
        created = self._create(client, headers)
        stranger = make_business(name="Otro")

        response = client.get(
            f"/invoices/{created['invoice']['id']}",
            headers={"X-Business-ID": str(stranger.id)}
        )
        assert response.status_code == 404


# ===== TESTS DE POSTGRESQL =====

POSTGRES_URL = os.environ.get("TEST_POSTGRES_URL")


@pytest.mark.postgres
@pytest.mark.skipif(not POSTGRES_URL, reason="TEST_POSTGRES_URL no definida")
class TestPostgresConcurrency:
    """Bloqueos reales: FOR UPDATE sobre la factura y upsert sobre el contador"""

    @pytest.fixture
    def pg_sessions(self):
        engine = build_engine(POSTGRES_URL)
        Base.metadata.drop_all(bind=engine)
        Base.metadata.create_all(bind=engine)
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
        Base.metadata.drop_all(bind=engine)
        engine.dispose()

    @pytest.fixture
    def pg_business(self, pg_sessions):
        db = pg_sessions()
        business = Business(
            name="Negocio PG",
            business_type=BusinessType.LICENSED_DEALER,
            invoice_number_prefix="INV",
            starting_invoice_number=1,
        )
        db.add(business)
        db.flush()
        customer = Customer(business_id=business.id, name="Cliente PG", is_active=True)
        db.add(customer)
        db.commit()
        ids = (business.id, customer.id)
        db.close()
        return ids

    def _run_parallel(self, pg_sessions, func, args):
        def run(arg):
            db = pg_sessions()
            try:
                return func(db, arg)
            finally:
                db.close()

        with ThreadPoolExecutor(max_workers=len(args)) as pool:
            futures = [pool.submit(run, arg) for arg in args]
            return [f.exception() or f.result() for f in futures]

    def test_concurrent_allocations(self, pg_sessions, pg_business):
        business_id, _ = pg_business

        def allocate(db, _):
            assigned = assign_invoice_number(db, business_id, DocumentType.TAX_INVOICE, "INV", 1)
            db.commit()
            return assigned.sequence_number

        numbers = self._run_parallel(pg_sessions, allocate, list(range(20)))
        assert sorted(numbers) == list(range(1, 21))

    def test_same_draft_finalized_once(self, pg_sessions, pg_business):
        business_id, customer_id = pg_business
        db = pg_sessions()
        draft = create_draft(db, business_id, customer_id, items=[item_data()])
        db.close()

        results = self._run_parallel(
            pg_sessions, lambda session, _: finalize(session, business_id, draft.invoice.id), list(range(5))
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 1
        assert all(isinstance(f, NotDraftError) for f in failures)

        db = pg_sessions()
        sequence = db.query(InvoiceSequence).filter_by(business_id=business_id).one()
        assert sequence.next_number == 2
        db.close()
