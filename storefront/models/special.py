"""Special (promotional rule) model."""
from sqlalchemy import (
    Column, Integer, String, Text, Numeric, Boolean, DateTime, JSON, CheckConstraint
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import validates
from sqlalchemy.sql import func
from storefront.database import Base
import enum


class SpecialType(str, enum.Enum):
    """Discount policy of a special."""
    DISCOUNT_PERCENTAGE = 'discount_percentage'
    FIXED_PRICE = 'fixed_price'
    BUNDLE_DISCOUNT = 'bundle_discount'
    BUY_X_GET_Y = 'buy_x_get_y'

    @classmethod
    def values(cls):
        return [member.value for member in cls]


JSONType = JSON().with_variant(JSONB, 'postgresql')


class Special(Base):
    """Time-boxed promotional rule, optionally redeemable by code."""

    __tablename__ = 'specials'
    __table_args__ = (
        CheckConstraint(
            "type IN ('discount_percentage', 'bundle_discount', 'buy_x_get_y', 'fixed_price')",
            name='ck_specials_type'
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(50), nullable=False)
    # number for percentage/fixed/bundle, {"buyQuantity": n, "getQuantity": m} for buy_x_get_y
    value = Column(JSONType, nullable=False)
    product_ids = Column(JSONType, nullable=True)
    category_ids = Column(JSONType, nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False, index=True)
    active = Column(Boolean, nullable=False, default=True, server_default='1', index=True)
    min_purchase = Column(Numeric(10, 2), nullable=True)
    max_uses = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0, server_default='0')
    code = Column(String(50), nullable=True, unique=True, index=True)
    image = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    @validates('code')
    def _upper_code(self, key, code):
        if code is None:
            return None
        code = code.strip().upper()
        return code or None

    @validates('type')
    def _check_type(self, key, special_type):
        if isinstance(special_type, SpecialType):
            return special_type.value
        if special_type not in SpecialType.values():
            raise ValueError(f"Invalid special type: {special_type}")
        return special_type

    def to_summary(self):
        """Public view returned by promo validation."""
        return {
            'id': self.id,
            'name': self.name,
            'code': self.code,
            'type': self.type,
            'description': self.description,
        }

    def __repr__(self):
        return f"<Special(id={self.id}, code='{self.code}', type='{self.type}')>"
