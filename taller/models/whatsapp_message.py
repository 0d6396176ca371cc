"""WhatsApp message model."""
from sqlalchemy import Column, String, Text, DateTime, JSON, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from taller.database import Base, BigIntId
import enum


class MessageStatus(str, enum.Enum):
    """
    Delivery status of an outbound message.

    pending -> sent -> delivered -> read, with failed reachable from
    pending or sent. read and failed are terminal.
    """
    PENDING = 'pending'
    SENT = 'sent'
    DELIVERED = 'delivered'
    READ = 'read'
    FAILED = 'failed'


class WhatsAppMessage(Base):
    """One outbound notification. Mutated only by sending and webhook reconciliation."""

    __tablename__ = 'whatsapp_messages'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    owner_id = Column(BigIntId, ForeignKey('owners.id'), nullable=False, index=True)
    order_id = Column(BigIntId, ForeignKey('orders.id'), nullable=True, index=True)
    template_id = Column(BigIntId, ForeignKey('whatsapp_templates.id'), nullable=True)
    phone_number = Column(String(50), nullable=False)
    content = Column(Text, nullable=False)
    variables = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default=MessageStatus.PENDING.value)
    external_id = Column(String(64), nullable=True, unique=True, index=True)
    error_message = Column(Text, nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    owner = relationship('Owner')
    order = relationship('Order', back_populates='messages')
    template = relationship('WhatsAppTemplate')

    def __repr__(self):
        return f"<WhatsAppMessage(id={self.id}, status='{self.status}', external_id={self.external_id})>"
