"""Owner model (dueño / cliente del taller)."""
from sqlalchemy import Column, String, Text, DateTime, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from taller.database import Base, BigIntId
import enum


class OwnerType(str, enum.Enum):
    """Owner type enum."""
    PERSON = 'person'
    COMPANY = 'company'


class Owner(Base):
    """Vehicle owner. whatsapp_consent gates every outbound WhatsApp message."""

    __tablename__ = 'owners'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    type = Column(String(20), nullable=False, default=OwnerType.PERSON.value)
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=False)
    whatsapp_consent = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    vehicles = relationship('Vehicle', back_populates='owner')
    orders = relationship('Order', back_populates='owner')

    def __repr__(self):
        return f"<Owner(id={self.id}, name='{self.name}', consent={self.whatsapp_consent})>"
