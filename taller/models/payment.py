"""Payment model."""
from sqlalchemy import Column, String, Numeric, Date, DateTime, Text, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from taller.database import Base, BigIntId
import enum


class PaymentMethod(str, enum.Enum):
    """Payment method enum."""
    CASH = 'cash'
    CARD = 'card'
    TRANSFER = 'transfer'
    CHECK = 'check'
    CREDIT = 'credit'


def normalize_payment_method(value) -> str:
    """
    Normalize payment method value to string for DB storage.

    Args:
        value: PaymentMethod enum or string (any case)

    Returns:
        str: one of the PaymentMethod values

    Raises:
        ValueError: If value is missing or unknown
    """
    if isinstance(value, PaymentMethod):
        return value.value

    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {m.value for m in PaymentMethod}:
            return normalized

    raise ValueError(f"Método de pago inválido: {value}")


class Payment(Base):
    """Money received against an order. Immutable once created."""

    __tablename__ = 'payments'
    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_payments_amount_positive'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    order_id = Column(BigIntId, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    payment_method = Column(String(20), nullable=False)
    reference_number = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    payment_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    order = relationship('Order', back_populates='payments')

    def __repr__(self):
        return f"<Payment(id={self.id}, amount={self.amount}, order={self.order_id})>"
