"""WhatsApp template model."""
from sqlalchemy import Column, String, Text, DateTime, Boolean, JSON
from sqlalchemy.sql import func
from taller.database import Base, BigIntId


class WhatsAppTemplate(Base):
    """
    Reusable message shape with {{variable}} placeholders.

    The content is rendered and copied into each WhatsAppMessage at send
    time, so editing a template never changes messages already sent.
    """

    __tablename__ = 'whatsapp_templates'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    category = Column(String(50), nullable=False, default='general')
    content = Column(Text, nullable=False)
    variables = Column(JSON, nullable=False, default=list)
    language = Column(String(10), nullable=False, default='es')
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<WhatsAppTemplate(id={self.id}, name='{self.name}', active={self.is_active})>"
