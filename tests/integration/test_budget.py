"""
Integration tests for budget lines and order total derivation.
"""

import pytest
from decimal import Decimal
from sqlalchemy.exc import OperationalError
from taller.exceptions import ValidationError, NotFoundError, PersistenceError
from taller.models import Order, BudgetLine, TimelineEntry
from taller.services.budget_service import (
    add_budget_line, update_budget_line, delete_budget_line, set_line_approved, approve_budget
)
from taller.services.ledger_service import record_payment


class TestBudgetLines:

    def test_order_total_is_sum_of_lines(self, session, empty_order):
        add_budget_line(empty_order.id, {
            'type': 'labor', 'description': 'Cambio de aceite',
            'quantity': 1, 'unit_price': Decimal('25.00'), 'tax_rate': Decimal('0.13')
        }, session)
        add_budget_line(empty_order.id, {
            'type': 'parts', 'description': 'Filtro de aceite', 'part_number': 'FO-123',
            'quantity': 2, 'unit_price': Decimal('8.50'), 'discount_percent': Decimal('0.10')
        }, session)

        order = session.get(Order, empty_order.id)
        assert order.total == Decimal('28.25') + Decimal('15.30')
        assert order.subtotal == Decimal('25.00') + Decimal('15.30')
        assert order.tax_amount == Decimal('3.25')
        assert order.discount_amount == Decimal('1.70')
        assert order.subtotal + order.tax_amount == order.total

    def test_update_recomputes(self, session, empty_order):
        line = add_budget_line(empty_order.id, {
            'description': 'Diagnóstico', 'quantity': 1, 'unit_price': Decimal('20.00')
        }, session)

        update_budget_line(empty_order.id, line.id, {'quantity': 3}, session)

        line = session.get(BudgetLine, line.id)
        assert line.total == Decimal('60.00')
        assert session.get(Order, empty_order.id).total == Decimal('60.00')

    def test_delete_recomputes(self, session, empty_order):
        keep = add_budget_line(empty_order.id, {
            'description': 'Alineación', 'quantity': 1, 'unit_price': Decimal('30.00')
        }, session)
        drop = add_budget_line(empty_order.id, {
            'description': 'Balanceo', 'quantity': 1, 'unit_price': Decimal('15.00')
        }, session)

        delete_budget_line(empty_order.id, drop.id, session)

        assert session.get(Order, empty_order.id).total == Decimal('30.00')
        assert session.get(BudgetLine, keep.id) is not None

    def test_total_change_rederives_payment_status(self, session, empty_order):
        add_budget_line(empty_order.id, {
            'description': 'Frenos', 'quantity': 1, 'unit_price': Decimal('50.00')
        }, session)
        record_payment(empty_order.id, Decimal('50'), 'cash', session=session)
        assert session.get(Order, empty_order.id).payment_status == 'paid'

        add_budget_line(empty_order.id, {
            'description': 'Pastillas', 'quantity': 1, 'unit_price': Decimal('40.00')
        }, session)

        order = session.get(Order, empty_order.id)
        assert order.total == Decimal('90.00')
        assert order.amount_paid == Decimal('50.00')
        assert order.payment_status == 'partial'

    def test_invalid_rate_rejected(self, session, empty_order):
        with pytest.raises(ValidationError):
            add_budget_line(empty_order.id, {
                'description': 'X', 'quantity': 1, 'unit_price': 10, 'tax_rate': 13
            }, session)
        assert session.query(BudgetLine).count() == 0

    def test_invalid_sort_order_rejected(self, session, empty_order):
        with pytest.raises(ValidationError):
            add_budget_line(empty_order.id, {
                'description': 'X', 'quantity': 1, 'unit_price': 10, 'sort_order': 'primero'
            }, session)
        assert session.query(BudgetLine).count() == 0

    def test_non_finite_quantity_rejected(self, session, empty_order):
        with pytest.raises(ValidationError):
            add_budget_line(empty_order.id, {
                'description': 'X', 'quantity': 'NaN', 'unit_price': 10
            }, session)
        assert session.query(BudgetLine).count() == 0

    def test_flush_failure_is_persistence_error(self, session, empty_order, monkeypatch):
        order_id = empty_order.id

        def failing_flush(objects=None):
            raise OperationalError('INSERT INTO budget_lines', {}, Exception('value too long'))

        with monkeypatch.context() as m:
            m.setattr(session(), 'flush', failing_flush)
            with pytest.raises(PersistenceError):
                add_budget_line(order_id, {
                    'description': 'X', 'quantity': 1, 'unit_price': 10
                }, session)

        assert session.query(BudgetLine).count() == 0
        assert session.get(Order, order_id).total == Decimal('0.00')

    def test_invalid_type_rejected(self, session, empty_order):
        with pytest.raises(ValidationError):
            add_budget_line(empty_order.id, {
                'type': 'service', 'description': 'X', 'quantity': 1, 'unit_price': 10
            }, session)

    def test_line_from_other_order(self, session, order, empty_order):
        line = add_budget_line(empty_order.id, {
            'description': 'X', 'quantity': 1, 'unit_price': 10
        }, session)
        with pytest.raises(NotFoundError):
            delete_budget_line(order.id, line.id, session)

    def test_set_line_approved(self, session, empty_order):
        line = add_budget_line(empty_order.id, {
            'description': 'X', 'quantity': 1, 'unit_price': 10
        }, session)
        line = set_line_approved(empty_order.id, line.id, True, session)
        assert line.approved is True


class TestApproveBudget:

    def test_approve_moves_status(self, session, empty_order):
        add_budget_line(empty_order.id, {
            'description': 'Servicio mayor', 'quantity': 1, 'unit_price': Decimal('120.00')
        }, session)

        order = approve_budget(empty_order.id, session)

        assert order.budget_approved is True
        assert order.budget_approved_at is not None
        assert order.status == 'approved'
        assert all(line.approved for line in order.budget_lines)
        entry = session.query(TimelineEntry).filter(TimelineEntry.order_id == order.id).one()
        assert entry.old_status == 'new'
        assert entry.new_status == 'approved'

    def test_approve_keeps_later_status(self, session, owner, vehicle):
        order = Order(
            folio='OT-EN-PROCESO', owner_id=owner.id, vehicle_id=vehicle.id,
            reason='Ruido en suspensión', status='in_progress'
        )
        session.add(order)
        session.commit()
        add_budget_line(order.id, {'description': 'X', 'quantity': 1, 'unit_price': 10}, session)

        order = approve_budget(order.id, session)
        assert order.status == 'in_progress'
        assert order.budget_approved is True

    def test_approve_without_lines(self, session, empty_order):
        with pytest.raises(ValidationError):
            approve_budget(empty_order.id, session)
        assert session.get(Order, empty_order.id).budget_approved is False
