"""Order model."""
from sqlalchemy import (
    Column, Integer, String, Text, Numeric, DateTime, ForeignKey, JSON, CheckConstraint
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base
import enum


class OrderStatus(str, enum.Enum):
    """Fulfillment status of an order."""
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    PREPARING = 'preparing'
    READY = 'ready'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'

    @classmethod
    def values(cls):
        return [member.value for member in cls]


class FulfillmentType(str, enum.Enum):
    """How the customer receives the order."""
    PICKUP = 'pickup'
    DELIVERY = 'delivery'

    @classmethod
    def values(cls):
        return [member.value for member in cls]


class Order(Base):
    """Customer order placed through checkout or directly."""

    __tablename__ = 'orders'
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'preparing', 'ready', 'completed', 'cancelled')",
            name='ck_orders_status'
        ),
        CheckConstraint("fulfillment_type IN ('pickup', 'delivery')", name='ck_orders_fulfillment_type'),
        CheckConstraint('subtotal >= 0', name='ck_orders_subtotal_positive'),
        CheckConstraint('total >= 0', name='ck_orders_total_positive'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey('customers.id', ondelete='SET NULL'), nullable=True, index=True)
    order_number = Column(String(50), unique=True, nullable=False)
    status = Column(String(50), nullable=False, default=OrderStatus.PENDING.value, index=True)
    subtotal = Column(Numeric(10, 2), nullable=False)
    tax = Column(Numeric(10, 2), nullable=False)
    total = Column(Numeric(10, 2), nullable=False)
    fulfillment_type = Column(String(20), nullable=False, default=FulfillmentType.PICKUP.value)
    pickup_time = Column(DateTime(timezone=True), nullable=True)
    delivery_address = Column(JSON().with_variant(JSONB, 'postgresql'), nullable=True)

    # Point-in-time snapshot of the customer, never re-derived from customers
    customer_name = Column(String(255), nullable=True)
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(20), nullable=True)
    notes = Column(Text, nullable=True)

    # Idempotency key for gateway reconciliation
    stripe_session_id = Column(String(255), unique=True, nullable=True)
    stripe_payment_intent = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    customer = relationship('Customer', back_populates='orders')
    lines = relationship(
        'OrderLine',
        back_populates='order',
        cascade='all, delete-orphan',
        passive_deletes=True,
        order_by='OrderLine.id'
    )

    def to_summary(self):
        """Minimal view returned by checkout and order creation."""
        return {
            'id': self.id,
            'orderNumber': self.order_number,
            'status': self.status,
            'total': float(self.total),
        }

    def to_dict(self, include_private: bool = False):
        """Full view with aggregated line items."""
        data = {
            'id': self.id,
            'orderNumber': self.order_number,
            'status': self.status,
            'subtotal': float(self.subtotal),
            'tax': float(self.tax),
            'total': float(self.total),
            'fulfillmentType': self.fulfillment_type,
            'pickupTime': self.pickup_time.isoformat() if self.pickup_time else None,
            'deliveryAddress': self.delivery_address,
            'customerName': self.customer_name,
            'customerEmail': self.customer_email,
            'customerPhone': self.customer_phone,
            'notes': self.notes,
            'items': [line.to_dict() for line in self.lines],
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }
        if include_private:
            data.update({
                'customerId': self.customer_id,
                'stripeSessionId': self.stripe_session_id,
                'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
            })
        return data

    def __repr__(self):
        return f"<Order(id={self.id}, number='{self.order_number}', status='{self.status}', total={self.total})>"
