"""Customer model."""
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base


class Customer(Base):
    """Storefront customer account (managed by the accounts service)."""

    __tablename__ = 'customers'

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=True)
    active = Column(Boolean, nullable=False, default=True, server_default='1')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    orders = relationship('Order', back_populates='customer', passive_deletes=True)

    def __repr__(self):
        return f"<Customer(id={self.id}, email='{self.email}')>"
