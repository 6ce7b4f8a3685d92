"""Specials blueprint - promo code validation for the cart."""
from flask import Blueprint, jsonify

from storefront.blueprints.metrics import record_promo_validation
from storefront.database import get_session
from storefront.middleware import get_json_body
from storefront.services.promo_service import validate_code

specials_bp = Blueprint('specials', __name__, url_prefix='/api/specials')


@specials_bp.route('/validate-code', methods=['POST'])
def validate_promo_code():
    """
    Check a promo code against the cart subtotal.

    Body: {code, subtotal, items[]}
    Returns 200 with {valid: true, special, discount} or {valid: false, error};
    400 only for a malformed body.
    """
    data = get_json_body()
    result = validate_code(
        get_session(),
        data.get('code'),
        data.get('subtotal'),
        data.get('items') or []
    )
    record_promo_validation(result.valid)

    return jsonify(result.to_dict()), 200
