from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, Text
from sqlalchemy.orm import relationship
from db.extensions import db
from datetime import datetime


class Vendor(db.Model):
    __tablename__ = 'vendors'

    id = Column(Integer, primary_key=True)
    # Owning user; one vendor profile per user
    user_id = Column(Integer, nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    cuisine = Column(String(255), nullable=True)
    location = Column(String(255), nullable=True)
    phone = Column(String(30), nullable=True)
    email = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)

    is_open = Column(Boolean, nullable=False, default=True)
    is_deleted = Column(Boolean, nullable=False, default=False)

    # Fraction in [0, 1]; NULL means "use the platform default"
    commission_rate = Column(Numeric(5, 4), nullable=True, default=0.15)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    menu_items = relationship('MenuItem', back_populates='vendor', lazy='dynamic')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'cuisine': self.cuisine,
            'location': self.location,
            'isOpen': bool(self.is_open),
            'commissionRate': float(self.commission_rate) if self.commission_rate is not None else None,
        }

    def __str__(self):
        return f"Vendor(id={self.id}, name='{self.name}', is_open={self.is_open})"

    def __repr__(self):
        return self.__str__()
