"""
Cart parsing and customer-info normalization.

Client payloads arrive in two spellings (snake_case and camelCase). Everything is
mapped here, once, so the services only ever see CartLine and CustomerInfo.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from storefront.exceptions import ValidationError
from storefront.utils.money import to_decimal, quantize_money


def _first(data: Dict[str, Any], *keys: str) -> Any:
    """Return the first non-empty value among keys."""
    for key in keys:
        value = data.get(key)
        if value is not None and value != '':
            return value
    return None


def _optional_int(value: Any, field_name: str) -> Optional[int]:
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field_name} must be an integer')


@dataclass(frozen=True)
class CartLine:
    """One priced entry of a prospective purchase."""
    name: str
    unit_price: Decimal
    quantity: int
    product_id: Optional[int] = None
    image: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return quantize_money(self.unit_price * self.quantity)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> 'CartLine':
        if not isinstance(data, dict):
            raise ValidationError('Each cart item must be an object')

        name = _first(data, 'name', 'productName', 'product_name')
        if not name or not str(name).strip():
            raise ValidationError('Each cart item needs a name')

        raw_price = _first(data, 'price', 'unitPrice', 'unit_price')
        try:
            unit_price = to_decimal(raw_price)
        except ValueError:
            raise ValidationError(f'Invalid price for "{name}"')
        if unit_price < 0:
            raise ValidationError(f'Price for "{name}" cannot be negative')

        raw_qty = data.get('quantity')
        if isinstance(raw_qty, bool) or raw_qty is None:
            raise ValidationError(f'Invalid quantity for "{name}"')
        try:
            qty_decimal = to_decimal(raw_qty)
        except ValueError:
            raise ValidationError(f'Invalid quantity for "{name}"')
        if qty_decimal != qty_decimal.to_integral_value() or qty_decimal <= 0:
            raise ValidationError(f'Quantity for "{name}" must be a positive whole number')

        return cls(
            name=str(name).strip(),
            unit_price=quantize_money(unit_price),
            quantity=int(qty_decimal),
            product_id=_optional_int(_first(data, 'id', 'productId', 'product_id'), 'Product id'),
            image=data.get('image') or None,
        )

    def to_metadata(self) -> Dict[str, Any]:
        """Compact per-line form carried through the gateway metadata."""
        return {
            'id': self.product_id,
            'name': self.name,
            'quantity': self.quantity,
            'price': float(self.unit_price),
        }


def parse_cart(items: Any) -> List[CartLine]:
    """Parse a non-empty list of cart item payloads."""
    if not items or not isinstance(items, list):
        raise ValidationError('No items in cart')
    return [CartLine.from_payload(item) for item in items]


def cart_subtotal(lines: List[CartLine]) -> Decimal:
    """Σ unit_price × quantity, rounded to the cent."""
    return quantize_money(sum((line.unit_price * line.quantity for line in lines), Decimal('0')))


@dataclass
class CustomerInfo:
    """Canonical customer and fulfillment details for checkout."""
    email: Optional[str] = None
    phone: Optional[str] = None
    order_type: Optional[str] = None
    customer_id: Optional[int] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    name: Optional[str] = None
    pickup_date: Optional[str] = None
    pickup_time: Optional[str] = None
    address: Optional[str] = None
    apartment: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    delivery_instructions: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def is_delivery(self) -> bool:
        return self.order_type == 'delivery'

    def delivery_address(self) -> Dict[str, Any]:
        return {
            'firstName': self.first_name,
            'lastName': self.last_name,
            'address': self.address,
            'apartment': self.apartment,
            'city': self.city,
            'state': self.state,
            'zipCode': self.zip_code,
            'instructions': self.delivery_instructions,
        }


def normalize_customer_info(raw: Optional[Dict[str, Any]]) -> CustomerInfo:
    """Map snake_case or camelCase customer payloads onto CustomerInfo."""
    raw = raw or {}
    if not isinstance(raw, dict):
        raise ValidationError('Customer info must be an object')

    return CustomerInfo(
        email=_first(raw, 'email'),
        phone=_first(raw, 'phone'),
        order_type=_first(raw, 'order_type', 'orderType'),
        customer_id=_optional_int(_first(raw, 'customer_id', 'customerId'), 'Customer id'),
        first_name=_first(raw, 'first_name', 'firstName'),
        last_name=_first(raw, 'last_name', 'lastName'),
        name=_first(raw, 'name'),
        pickup_date=_first(raw, 'pickup_date', 'pickupDate'),
        pickup_time=_first(raw, 'pickup_time', 'pickupTime'),
        address=_first(raw, 'address'),
        apartment=_first(raw, 'apartment'),
        city=_first(raw, 'city'),
        state=_first(raw, 'state'),
        zip_code=_first(raw, 'zip_code', 'zipCode'),
        delivery_instructions=_first(raw, 'delivery_instructions', 'deliveryInstructions'),
    )
