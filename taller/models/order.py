"""Order model (orden de trabajo)."""
from sqlalchemy import Column, String, Numeric, DateTime, Date, Text, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.sql import func
from taller.database import Base, BigIntId
import enum


class OrderStatus(str, enum.Enum):
    """Order status enum."""
    NEW = 'new'
    DIAGNOSIS = 'diagnosis'
    WAITING_APPROVAL = 'waiting_approval'
    APPROVED = 'approved'
    IN_PROGRESS = 'in_progress'
    WAITING_PARTS = 'waiting_parts'
    QUALITY_CHECK = 'quality_check'
    READY = 'ready'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'


class PaymentStatus(str, enum.Enum):
    """Payment status, derived from (total, amount_paid)."""
    PENDING = 'pending'
    PARTIAL = 'partial'
    PAID = 'paid'


class Order(Base):
    """
    Order (orden de trabajo) for one vehicle/owner pair.

    total and its components are derived from the budget lines; amount_paid
    and payment_status are derived from the payments. Both are recomputed by
    the ledger services and never patched incrementally.
    """

    __tablename__ = 'orders'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    folio = Column(String(32), nullable=False, unique=True)
    owner_id = Column(BigIntId, ForeignKey('owners.id'), nullable=False, index=True)
    vehicle_id = Column(BigIntId, ForeignKey('vehicles.id'), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=OrderStatus.NEW.value)
    reason = Column(Text, nullable=False, default='')
    commitment_date = Column(Date, nullable=True)

    budget_approved = Column(Boolean, nullable=False, default=False)
    budget_approved_at = Column(DateTime(timezone=True), nullable=True)

    subtotal = Column(Numeric(14, 2), nullable=False, default=0, server_default='0')
    tax_amount = Column(Numeric(14, 2), nullable=False, default=0, server_default='0')
    discount_amount = Column(Numeric(14, 2), nullable=False, default=0, server_default='0')
    total = Column(Numeric(14, 2), nullable=False, default=0, server_default='0')
    amount_paid = Column(Numeric(14, 2), nullable=False, default=0, server_default='0')
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    owner = relationship('Owner', back_populates='orders')
    vehicle = relationship('Vehicle')
    budget_lines = relationship(
        'BudgetLine', back_populates='order', cascade='all, delete-orphan',
        order_by='(BudgetLine.sort_order, BudgetLine.id)'
    )
    payments = relationship(
        'Payment', back_populates='order', cascade='all, delete-orphan',
        order_by='(Payment.payment_date.desc(), Payment.id.desc())'
    )
    timeline = relationship(
        'TimelineEntry', back_populates='order', cascade='all, delete-orphan',
        order_by='TimelineEntry.id.desc()'
    )
    messages = relationship('WhatsAppMessage', back_populates='order')

    @hybrid_property
    def balance(self):
        """Amount still owed: total - amount_paid (negative after an overpayment)."""
        return (self.total or 0) - (self.amount_paid or 0)

    def __repr__(self):
        return f"<Order(id={self.id}, folio='{self.folio}', status='{self.status}', total={self.total})>"
