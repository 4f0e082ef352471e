from core.imports import Blueprint, jsonify, jwt_required
from core.extensions import get_marketplace
from routes.auth import current_user
from services.domain import Role

farmer_bp = Blueprint('farmer', __name__)


@farmer_bp.route('/api/farmer/earnings', methods=['GET'])
@jwt_required()
def get_earnings():
    """
    Farmer earnings from delivered orders
    ---
    tags:
      - Farmer
    security:
      - Bearer: []
    responses:
      200:
        description: Earnings summary
        schema:
          type: object
          properties:
            total_earnings:
              type: number
              example: 120
            delivered_order_count:
              type: integer
              example: 1
      403:
        description: Caller is not a farmer
    """
    actor = current_user()
    if actor.role != Role.FARMER:
        return jsonify({"error": "not_authorized", "message": "Only farmers have earnings"}), 403

    return jsonify(get_marketplace().earnings.earnings_for(actor.id).to_dict()), 200
