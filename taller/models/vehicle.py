"""Vehicle model."""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from taller.database import Base, BigIntId


class Vehicle(Base):
    """Vehicle (vehículo)."""

    __tablename__ = 'vehicles'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    owner_id = Column(BigIntId, ForeignKey('owners.id'), nullable=False, index=True)
    plate = Column(String(20), nullable=False)
    make = Column(String(80), nullable=False)
    model = Column(String(80), nullable=False)
    year = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    owner = relationship('Owner', back_populates='vehicles')

    @property
    def display_name(self):
        parts = [self.make, self.model]
        if self.year:
            parts.append(str(self.year))
        return ' '.join(parts)

    def __repr__(self):
        return f"<Vehicle(id={self.id}, plate='{self.plate}')>"
