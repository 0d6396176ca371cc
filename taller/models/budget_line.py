"""BudgetLine model for order budget items."""
from sqlalchemy import Column, String, Numeric, Integer, DateTime, Text, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from taller.database import Base, BigIntId
import enum


class BudgetLineType(str, enum.Enum):
    """Budget line type enum."""
    LABOR = 'labor'
    PARTS = 'parts'


class BudgetLine(Base):
    """
    Budget Line (línea de presupuesto).

    tax_rate and discount_percent are fractions in [0, 1]. subtotal is the
    amount after discount and before tax; subtotal + tax_amount == total.
    """

    __tablename__ = 'budget_lines'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    order_id = Column(BigIntId, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    type = Column(String(10), nullable=False, default=BudgetLineType.LABOR.value)
    description = Column(String(255), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit_price = Column(Numeric(14, 2), nullable=False)
    tax_rate = Column(Numeric(5, 4), nullable=False, default=0)
    discount_percent = Column(Numeric(5, 4), nullable=False, default=0)
    subtotal = Column(Numeric(14, 2), nullable=False)
    discount_amount = Column(Numeric(14, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(14, 2), nullable=False)
    total = Column(Numeric(14, 2), nullable=False)
    approved = Column(Boolean, nullable=False, default=False)
    part_number = Column(String(64), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    order = relationship('Order', back_populates='budget_lines')

    def __repr__(self):
        return f"<BudgetLine(id={self.id}, order_id={self.order_id}, total={self.total})>"
