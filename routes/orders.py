from core.imports import Blueprint, jsonify, request, jwt_required
from core.extensions import get_marketplace
from core.errors import ValidationError
from routes.auth import current_user
from services.domain import CheckoutRequest, StatusUpdateRequest

orders_bp = Blueprint('orders', __name__)


@orders_bp.route('/api/orders', methods=['POST'])
@jwt_required()
def create_order():
    """
    Check out a cart
    ---
    tags:
      - Orders
    summary: Place one order for produce from a single farmer
    description: >
      Reserves stock on every listing in the cart. Either all lines are
      reserved and the order is created, or nothing changes.
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - items
            - delivery_address
          properties:
            items:
              type: array
              items:
                type: object
                properties:
                  listing_id:
                    type: integer
                    example: 5
                  quantity:
                    type: integer
                    example: 4
            delivery_address:
              type: object
              properties:
                address: { type: string, example: "Flat 4B, Baner Road" }
                city: { type: string, example: "Pune" }
                state: { type: string, example: "Maharashtra" }
                zip: { type: string, example: "411045" }
                phone: { type: string, example: "+91 98123 45678" }
    responses:
      201:
        description: Order placed, status pending
      400:
        description: Empty cart or invalid input
      403:
        description: Only buyers can check out
      409:
        description: Not enough stock, or cart spans several farmers
    """
    actor = current_user()
    order = get_marketplace().checkout(actor, CheckoutRequest.from_dict(request.get_json(silent=True)))

    return jsonify({
        "message": "Order placed successfully! A delivery partner will pick it up soon.",
        "order": order.to_dict()
    }), 201


@orders_bp.route('/api/orders', methods=['GET'])
@jwt_required()
def list_orders():
    """
    Orders visible to the caller
    ---
    tags:
      - Orders
    description: >
      Buyers see their own orders, farmers see orders containing their
      produce, delivery partners see the open work queue (pending, accepted,
      out for delivery). Pass history=1 to add a delivery partner's finished jobs.
    security:
      - Bearer: []
    parameters:
      - name: history
        in: query
        type: boolean
    responses:
      200:
        description: Orders, newest first
    """
    actor = current_user()
    include_history = request.args.get("history") in ("1", "true", "yes")
    orders = get_marketplace().ledger.visible_orders(actor.id, actor.role, include_history=include_history)

    return jsonify({
        "orders": [order.to_dict() for order in orders],
        "count": len(orders)
    }), 200


@orders_bp.route('/api/orders/<int:order_id>', methods=['GET'])
@jwt_required()
def get_order(order_id):
    actor = current_user()
    order = get_marketplace().ledger.get_for_viewer(order_id, actor.id, actor.role)
    return jsonify(order.to_dict()), 200


@orders_bp.route('/api/orders/<int:order_id>/status', methods=['PUT'])
@jwt_required()
def update_order_status(order_id):
    """
    Move an order to its next status
    ---
    tags:
      - Orders
    description: >
      pending -> accepted (delivery partner or farmer),
      accepted -> out_for_delivery (delivery partner),
      out_for_delivery -> delivered (delivery partner),
      pending/accepted -> cancelled (buyer or farmer).
    security:
      - Bearer: []
    parameters:
      - name: order_id
        in: path
        required: true
        type: integer
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            status:
              type: string
              example: accepted
    responses:
      200:
        description: Status updated
      403:
        description: Caller has no stake in this order
      404:
        description: Order not found
      409:
        description: Transition not allowed from the current status for this role
    """
    actor = current_user()
    body = StatusUpdateRequest.from_dict(request.get_json(silent=True))
    order = get_marketplace().ledger.update_status(order_id, actor.id, actor.role, body.status)

    return jsonify({
        "message": f"Order status updated to {order.status.value}",
        "order": order.to_dict()
    }), 200


@orders_bp.route('/api/orders/events', methods=['GET'])
@jwt_required()
def order_events():
    """
    Order changes since a sequence number
    ---
    tags:
      - Orders
    description: >
      Poll with the last_sequence from the previous response to receive only
      new events. Events are filtered by the same rule as GET /api/orders.
    security:
      - Bearer: []
    parameters:
      - name: after
        in: query
        type: integer
        default: 0
    responses:
      200:
        description: Events in sequence order
    """
    actor = current_user()
    try:
        after = int(request.args.get("after", 0))
    except ValueError:
        raise ValidationError("after must be an integer", field="after")

    market = get_marketplace()
    events, cursor = market.feed.poll(
        after, predicate=lambda order: market.ledger.can_view(order, actor.id, actor.role, include_history=True)
    )
    return jsonify({
        "events": [event.to_dict() for event in events],
        "last_sequence": cursor
    }), 200
