"""
Order financial ledger.

Derives an order's amount_paid and payment_status from its recorded
payments. The aggregate is always recomputed in SQL inside the same
transaction as the payment insert, with the order row locked, so concurrent
writers cannot drift the running total.
"""
import logging
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Dict, List, Optional, Union

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from taller.exceptions import (
    ValidationError, NotFoundError, OverpaymentRejected, PersistenceError, WorkshopError
)
from taller.models import (
    Order, Payment, PaymentStatus, TimelineEntry, TimelineEntryType, normalize_payment_method
)
from taller.utils.formatters import money

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
ZERO = Decimal('0.00')
ONE = Decimal('1')

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number, field: str = 'valor') -> Decimal:
    """Convert a number-like value to a finite Decimal without going through binary floats."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f'{field}: valor numérico requerido')
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f'{field}: valor numérico inválido ({value})')
    if not result.is_finite():
        raise ValidationError(f'{field}: valor numérico inválido ({value})')
    return result


def quantize_money(value: Decimal) -> Decimal:
    """Round to currency precision with round-half-up."""
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"Monto fuera de rango: {value}")


def _validate_line_inputs(quantity, unit_price, tax_rate, discount_pct):
    quantity = to_decimal(quantity, 'cantidad')
    unit_price = to_decimal(unit_price, 'precio unitario')
    tax_rate = to_decimal(tax_rate, 'impuesto')
    discount_pct = to_decimal(discount_pct, 'descuento')

    if quantity < 0:
        raise ValidationError('La cantidad no puede ser negativa')
    if unit_price < 0:
        raise ValidationError('El precio unitario no puede ser negativo')
    if not ZERO <= tax_rate <= ONE:
        raise ValidationError('La tasa de impuesto debe estar entre 0 y 1')
    if not ZERO <= discount_pct <= ONE:
        raise ValidationError('El descuento debe estar entre 0 y 1')

    return quantity, unit_price, tax_rate, discount_pct


def compute_line_total(quantity: Number, unit_price: Number,
                       tax_rate: Number = 0, discount_pct: Number = 0) -> Decimal:
    """
    Total of one budget line: quantity * unit_price * (1 + tax) * (1 - discount).

    The product is computed exactly and rounded once to 2 decimals (half-up).

    Raises:
        ValidationError: negative quantity/price or rates outside [0, 1]
    """
    quantity, unit_price, tax_rate, discount_pct = _validate_line_inputs(
        quantity, unit_price, tax_rate, discount_pct
    )
    return quantize_money(quantity * unit_price * (ONE + tax_rate) * (ONE - discount_pct))


def compute_line_amounts(quantity: Number, unit_price: Number,
                         tax_rate: Number = 0, discount_pct: Number = 0) -> Dict[str, Decimal]:
    """
    Break a line into stored components.

    total matches compute_line_total(); tax_amount absorbs the rounding so
    that subtotal + tax_amount == total exactly.
    """
    quantity, unit_price, tax_rate, discount_pct = _validate_line_inputs(
        quantity, unit_price, tax_rate, discount_pct
    )
    gross = quantity * unit_price
    subtotal = quantize_money(gross * (ONE - discount_pct))
    total = compute_line_total(quantity, unit_price, tax_rate, discount_pct)

    return {
        'subtotal': subtotal,
        'discount_amount': quantize_money(gross) - subtotal,
        'tax_amount': total - subtotal,
        'total': total,
    }


def derive_payment_status(total: Number, amount_paid: Number) -> PaymentStatus:
    """
    pending when nothing was paid, partial while below the total, paid otherwise.

    An overpaid order stays paid.
    """
    total = to_decimal(total, 'total')
    amount_paid = to_decimal(amount_paid, 'monto pagado')

    if amount_paid <= 0:
        return PaymentStatus.PENDING
    if amount_paid < total:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PAID


def sum_payments(order_id: int, session) -> Decimal:
    """SQL aggregate of every payment recorded for the order."""
    total = session.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
        Payment.order_id == order_id
    ).scalar()
    return quantize_money(to_decimal(total))


def _lock_order(order_id: int, session) -> Order:
    order = (
        session.query(Order)
        .filter(Order.id == order_id)
        .with_for_update()
        .first()
    )
    if not order:
        raise NotFoundError(f'Orden {order_id} no encontrada')
    return order


def refresh_payment_totals(order: Order, session) -> Order:
    """Recompute amount_paid and payment_status from the payments table."""
    session.flush()
    order.amount_paid = sum_payments(order.id, session)
    order.payment_status = derive_payment_status(order.total, order.amount_paid).value
    return order


def record_payment(
    order_id: int,
    amount: Number,
    payment_method: str,
    payment_date: Optional[Union[date, datetime]] = None,
    reference_number: Optional[str] = None,
    notes: Optional[str] = None,
    allow_overpayment: bool = False,
    session=None
) -> Payment:
    """
    Record a payment against an order and re-derive its financial status.

    The payment insert, the amount_paid/payment_status update and the
    timeline entry are committed together or not at all.

    Args:
        order_id: Order ID
        amount: Payment amount, must be > 0
        payment_method: cash, card, transfer, check or credit
        payment_date: Date received (defaults to today)
        reference_number: Optional bank/voucher reference
        notes: Optional notes
        allow_overpayment: Operator confirmed paying above the pending balance
        session: SQLAlchemy session

    Returns:
        Payment object

    Raises:
        ValidationError: amount <= 0 or invalid method
        OverpaymentRejected: amount exceeds the balance and allow_overpayment is False
        NotFoundError: unknown order
        PersistenceError: the transaction failed and was rolled back
    """
    try:
        # Step 1: validate input before touching the store
        amount = to_decimal(amount, 'monto')
        if amount <= 0:
            raise ValidationError('El monto del pago debe ser mayor a 0')
        amount = quantize_money(amount)

        try:
            method = normalize_payment_method(payment_method)
        except ValueError as e:
            raise ValidationError(str(e))

        if payment_date is None:
            payment_date = date.today()
        elif isinstance(payment_date, datetime):
            payment_date = payment_date.date()

        # Step 2: lock order row and re-read the persisted sum
        order = _lock_order(order_id, session)
        paid_so_far = sum_payments(order.id, session)
        balance = to_decimal(order.total) - paid_so_far
        overpays = amount > balance

        if overpays and not allow_overpayment:
            raise OverpaymentRejected(amount, balance)

        if overpays:
            logger.warning(
                f"Overpayment accepted on order {order.folio}: "
                f"amount={amount} balance={balance}"
            )

        # Step 3: insert payment
        payment = Payment(
            order_id=order.id,
            amount=amount,
            payment_method=method,
            reference_number=(reference_number or None),
            notes=(notes or None),
            payment_date=payment_date
        )
        session.add(payment)

        # Step 4: derived fields from the aggregate, same transaction
        refresh_payment_totals(order, session)

        session.add(TimelineEntry(
            order_id=order.id,
            type=TimelineEntryType.PAYMENT.value,
            title='Pago registrado',
            description=f'Se recibió un pago de {money(amount)} por {method}'
        ))

        session.commit()
        logger.info(
            f"Payment recorded: order={order.folio} amount={amount} "
            f"amount_paid={order.amount_paid} status={order.payment_status}"
        )
        return payment

    except WorkshopError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"Error recording payment for order {order_id}: {e}")
        raise PersistenceError(f'Error al registrar pago: {e.__class__.__name__}')


def list_payments(order_id: int, session) -> List[Payment]:
    """Payments for an order, newest first."""
    if not session.query(Order.id).filter(Order.id == order_id).first():
        raise NotFoundError(f'Orden {order_id} no encontrada')

    return (
        session.query(Payment)
        .filter(Payment.order_id == order_id)
        .order_by(Payment.payment_date.desc(), Payment.id.desc())
        .all()
    )


def get_financial_summary(order_id: int, session) -> Dict:
    """Display data for the order detail screen."""
    order = session.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError(f'Orden {order_id} no encontrada')

    total = to_decimal(order.total)
    amount_paid = to_decimal(order.amount_paid)
    return {
        'id': order.id,
        'folio': order.folio,
        'status': order.status,
        'subtotal': to_decimal(order.subtotal),
        'tax_amount': to_decimal(order.tax_amount),
        'discount_amount': to_decimal(order.discount_amount),
        'total': total,
        'amount_paid': amount_paid,
        'balance': get_balance(order),
        'payment_status': order.payment_status,
        'budget_approved': order.budget_approved,
    }


def get_balance(order: Order) -> Decimal:
    """total - amount_paid; negative after an accepted overpayment."""
    return to_decimal(order.total) - to_decimal(order.amount_paid)
