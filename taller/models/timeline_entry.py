"""Timeline entry model (bitácora de la orden)."""
from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from taller.database import Base, BigIntId
import enum


class TimelineEntryType(str, enum.Enum):
    NOTE = 'note'
    STATUS_CHANGE = 'status_change'
    PAYMENT = 'payment'
    MESSAGE_SENT = 'message_sent'


class TimelineEntry(Base):
    __tablename__ = 'timeline_entries'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    order_id = Column(BigIntId, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    old_status = Column(String(20), nullable=True)
    new_status = Column(String(20), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    order = relationship('Order', back_populates='timeline')

    def __repr__(self):
        return f"<TimelineEntry(id={self.id}, order_id={self.order_id}, type='{self.type}')>"
