"""Budget line management and order total derivation."""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from taller.exceptions import ValidationError, NotFoundError, PersistenceError, WorkshopError
from taller.models import (
    Order, OrderStatus, BudgetLine, BudgetLineType, TimelineEntry, TimelineEntryType
)
from taller.services.ledger_service import (
    compute_line_amounts, derive_payment_status, to_decimal, quantize_money, sum_payments
)

logger = logging.getLogger(__name__)

APPROVABLE_STATUSES = {
    OrderStatus.NEW.value,
    OrderStatus.DIAGNOSIS.value,
    OrderStatus.WAITING_APPROVAL.value,
}

EDITABLE_FIELDS = (
    'type', 'description', 'quantity', 'unit_price', 'tax_rate',
    'discount_percent', 'part_number', 'sort_order', 'notes'
)


def _get_order(order_id: int, session, lock: bool = False) -> Order:
    query = session.query(Order).filter(Order.id == order_id)
    if lock:
        query = query.with_for_update()
    order = query.first()
    if not order:
        raise NotFoundError(f'Orden {order_id} no encontrada')
    return order


def _get_line(order_id: int, line_id: int, session) -> BudgetLine:
    line = session.query(BudgetLine).filter(
        BudgetLine.id == line_id,
        BudgetLine.order_id == order_id
    ).first()
    if not line:
        raise NotFoundError(f'Línea {line_id} no encontrada en la orden')
    return line


def _normalize_line_type(value) -> str:
    if isinstance(value, BudgetLineType):
        return value.value
    normalized = str(value or '').strip().lower()
    if normalized not in {t.value for t in BudgetLineType}:
        raise ValidationError(f'Tipo de línea inválido: {value}. Use labor o parts')
    return normalized


def _apply_amounts(line: BudgetLine):
    amounts = compute_line_amounts(line.quantity, line.unit_price, line.tax_rate, line.discount_percent)
    line.subtotal = amounts['subtotal']
    line.discount_amount = amounts['discount_amount']
    line.tax_amount = amounts['tax_amount']
    line.total = amounts['total']


def recalculate_order_totals(order: Order, session) -> Order:
    """
    Re-derive order subtotal/tax/discount/total from its budget lines.

    payment_status is re-derived too since the total may have moved.
    Caller commits.
    """
    session.flush()
    subtotal, tax_amount, discount_amount, total = session.query(
        func.coalesce(func.sum(BudgetLine.subtotal), 0),
        func.coalesce(func.sum(BudgetLine.tax_amount), 0),
        func.coalesce(func.sum(BudgetLine.discount_amount), 0),
        func.coalesce(func.sum(BudgetLine.total), 0),
    ).filter(BudgetLine.order_id == order.id).one()

    order.subtotal = quantize_money(to_decimal(subtotal))
    order.tax_amount = quantize_money(to_decimal(tax_amount))
    order.discount_amount = quantize_money(to_decimal(discount_amount))
    order.total = quantize_money(to_decimal(total))

    order.amount_paid = sum_payments(order.id, session)
    order.payment_status = derive_payment_status(order.total, order.amount_paid).value
    return order


def _persistence_error(session, action: str, error: SQLAlchemyError) -> PersistenceError:
    session.rollback()
    logger.exception(f"Error on {action}: {error}")
    return PersistenceError(f'Error al {action}')


def _parse_sort_order(value, default: int) -> int:
    if value in (None, ''):
        return default
    if isinstance(value, bool):
        raise ValidationError(f'Orden de línea inválido: {value}')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Orden de línea inválido: {value}')


def add_budget_line(order_id: int, data: Dict[str, Any], session) -> BudgetLine:
    """
    Add a labor/parts line to an order and recompute its totals.

    Args:
        order_id: Order ID
        data: description, quantity, unit_price, optional type, tax_rate,
              discount_percent, part_number, sort_order, notes
        session: SQLAlchemy session

    Returns:
        BudgetLine object
    """
    try:
        description = (data.get('description') or '').strip()
        if not description:
            raise ValidationError('La descripción es requerida')
        if data.get('quantity') is None or data.get('unit_price') is None:
            raise ValidationError('Cantidad y precio unitario son requeridos')

        order = _get_order(order_id, session, lock=True)

        line = BudgetLine(
            order_id=order.id,
            type=_normalize_line_type(data.get('type', BudgetLineType.LABOR)),
            description=description,
            quantity=to_decimal(data['quantity'], 'cantidad'),
            unit_price=to_decimal(data['unit_price'], 'precio unitario'),
            tax_rate=to_decimal(data.get('tax_rate', 0), 'impuesto'),
            discount_percent=to_decimal(data.get('discount_percent', 0), 'descuento'),
            part_number=data.get('part_number'),
            sort_order=_parse_sort_order(data.get('sort_order'), len(order.budget_lines)),
            notes=data.get('notes'),
            approved=False
        )
        _apply_amounts(line)
        session.add(line)

        recalculate_order_totals(order, session)
        session.commit()
        logger.info(f"Budget line added: order={order.folio} line_total={line.total} order_total={order.total}")
        return line

    except WorkshopError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        raise _persistence_error(session, 'agregar línea de presupuesto', e)


def update_budget_line(order_id: int, line_id: int, data: Dict[str, Any], session) -> BudgetLine:
    """Edit a line; amounts and order totals are recomputed."""
    try:
        order = _get_order(order_id, session, lock=True)
        line = _get_line(order_id, line_id, session)

        for field in EDITABLE_FIELDS:
            if field not in data:
                continue
            value = data[field]
            if field == 'type':
                value = _normalize_line_type(value)
            elif field in ('quantity', 'unit_price', 'tax_rate', 'discount_percent'):
                value = to_decimal(value, field)
            elif field == 'sort_order':
                value = _parse_sort_order(value, line.sort_order)
            elif field == 'description':
                value = (value or '').strip()
                if not value:
                    raise ValidationError('La descripción es requerida')
            setattr(line, field, value)

        _apply_amounts(line)
        recalculate_order_totals(order, session)
        session.commit()
        return line

    except WorkshopError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        raise _persistence_error(session, 'actualizar línea de presupuesto', e)


def delete_budget_line(order_id: int, line_id: int, session) -> Order:
    try:
        order = _get_order(order_id, session, lock=True)
        line = _get_line(order_id, line_id, session)
        session.delete(line)
        recalculate_order_totals(order, session)
        session.commit()
        return order

    except WorkshopError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        raise _persistence_error(session, 'eliminar línea de presupuesto', e)


def set_line_approved(order_id: int, line_id: int, approved: bool, session) -> BudgetLine:
    try:
        line = _get_line(order_id, line_id, session)
        line.approved = bool(approved)
        session.commit()
        return line

    except WorkshopError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        raise _persistence_error(session, 'aprobar línea de presupuesto', e)


def approve_budget(order_id: int, session) -> Order:
    """
    Mark the order budget as approved by the customer.

    Moves the order to `approved` when it is still before work starts.

    Raises:
        ValidationError: the order has no budget lines
    """
    try:
        order = _get_order(order_id, session, lock=True)
        if not order.budget_lines:
            raise ValidationError('El presupuesto no tiene líneas')

        now = datetime.now(timezone.utc)
        order.budget_approved = True
        order.budget_approved_at = now
        for line in order.budget_lines:
            line.approved = True

        old_status = order.status
        if old_status in APPROVABLE_STATUSES:
            order.status = OrderStatus.APPROVED.value
            session.add(TimelineEntry(
                order_id=order.id,
                type=TimelineEntryType.STATUS_CHANGE.value,
                title='Presupuesto aprobado',
                description=f'Total aprobado: {Decimal(order.total):.2f}',
                old_status=old_status,
                new_status=order.status
            ))

        session.commit()
        logger.info(f"Budget approved: order={order.folio} status {old_status} -> {order.status}")
        return order

    except WorkshopError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        raise _persistence_error(session, 'aprobar presupuesto', e)
