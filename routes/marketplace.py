from core.imports import Blueprint, jsonify, request, jwt_required, current_app, date
from core.extensions import get_marketplace
from core.errors import ValidationError
from routes.auth import current_user
from services.catalog import group_by_farmer
from services.domain import Actor, CreateListingRequest, ListingFilters, Role, UpdateListingRequest, parse_decimal
from services.pricing import market_annotation

marketplace_bp = Blueprint('marketplace', __name__)

DEMO_LISTINGS = [
    {"crop_name": "Tomato", "variety": "Hybrid", "price": 30, "quantity": 120, "shelf_life_days": 5},
    {"crop_name": "Onion", "variety": "Nashik Red", "price": 28, "quantity": 300, "shelf_life_days": 30},
    {"crop_name": "Spinach", "price": 20, "quantity": 40, "unit": "bunch", "shelf_life_days": 2},
    {"crop_name": "Wheat", "variety": "Lokwan", "price": 29, "quantity": 500, "shelf_life_days": 180},
]


def seed_demo_listings(farmer):
    market = get_marketplace()
    if market.catalog.list_for_farmer(farmer.id):
        current_app.logger.info("Demo listings already exist.")
        return

    actor = Actor(id=farmer.id, role=Role.FARMER, name=farmer.name)
    for data in DEMO_LISTINGS:
        request_data = CreateListingRequest.from_dict({**data, "harvest_date": date.today().isoformat()})
        listing = market.catalog.create_listing(actor, request_data)
        current_app.logger.info("Listing added: %s", listing.crop_name)


def listing_view(listing):
    market = get_marketplace()
    return {**listing.to_dict(), "expiry": market.catalog.expiry_status(listing).to_dict()}


@marketplace_bp.route('/api/listings', methods=['GET'])
def list_listings():
    """
    Browse orderable produce
    ---
    tags:
      - Marketplace
    parameters:
      - name: crop
        in: query
        type: string
        description: Case-insensitive substring of the crop name
      - name: maxPrice
        in: query
        type: number
      - name: shelfLife
        in: query
        type: string
        enum: [short, long]
        description: "short = perishable, long = grains and other keepers"
      - name: grouped
        in: query
        type: boolean
        description: Group listings by farmer
    responses:
      200:
        description: Listings that are in stock and not expired
        schema:
          type: object
          properties:
            listings:
              type: array
              items:
                type: object
                properties:
                  id: { type: integer, example: 1 }
                  crop_name: { type: string, example: "Tomato" }
                  price: { type: number, example: 30 }
                  quantity: { type: integer, example: 120 }
                  unit: { type: string, example: "kg" }
                  expiry_date: { type: string, example: "2026-10-24" }
                  expiry:
                    type: object
                    properties:
                      days_left: { type: integer, example: 5 }
                      label: { type: string, example: "5 days left" }
            count:
              type: integer
              example: 4
      400:
        description: Invalid filter value
    """
    market = get_marketplace()
    filters = ListingFilters.from_args(request.args)
    listings = market.catalog.list_available(filters)

    if request.args.get("grouped") in ("1", "true", "yes"):
        groups = group_by_farmer(listings)
        for group in groups:
            group["listings"] = [listing_view(l) for l in group["listings"]]
        return jsonify({"farmers": groups, "count": len(listings)}), 200

    return jsonify({
        "listings": [listing_view(l) for l in listings],
        "count": len(listings)
    }), 200


@marketplace_bp.route('/api/listings/mine', methods=['GET'])
@jwt_required()
def my_listings():
    actor = current_user()
    if actor.role != Role.FARMER:
        return jsonify({"error": "not_authorized", "message": "Only farmers have listings"}), 403

    listings = get_marketplace().catalog.list_for_farmer(actor.id)
    return jsonify({
        "listings": [listing_view(l) for l in listings],
        "count": len(listings)
    }), 200


@marketplace_bp.route('/api/listings/stats', methods=['GET'])
def market_stats():
    """
    Indicative market price for a crop
    ---
    tags:
      - Marketplace
    parameters:
      - name: crop
        in: query
        type: string
        required: true
        example: "tomato"
      - name: price
        in: query
        type: number
        description: Optional asking price to rate against the market
    responses:
      200:
        description: Price range in Rs/kg
        schema:
          type: object
          properties:
            avgPrice: { type: number, example: 35 }
            minPrice: { type: number, example: 25 }
            maxPrice: { type: number, example: 45 }
            count: { type: integer, example: 18 }
            signal: { type: string, example: "fair" }
      400:
        description: Crop name missing
    """
    crop = (request.args.get("crop") or "").strip()
    if not crop:
        raise ValidationError("Crop name is required", field="crop")

    oracle = get_marketplace().pricing
    price = request.args.get("price")
    if price:
        return jsonify(market_annotation(oracle, crop, parse_decimal(price, "price"))), 200
    return jsonify(oracle.price_stats(crop).to_dict()), 200


@marketplace_bp.route('/api/listings', methods=['POST'])
@jwt_required()
def create_listing():
    """
    List produce for sale (farmers only)
    ---
    tags:
      - Marketplace
    security:
      - Bearer: []
    parameters:
      - name: Authorization
        in: header
        description: "JWT token as: Bearer <your_token>"
        required: true
        type: string
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - crop_name
            - price
            - quantity
            - harvest_date
            - shelf_life_days
          properties:
            crop_name: { type: string, example: "Tomato" }
            variety: { type: string, example: "Hybrid" }
            price: { type: number, example: 30 }
            quantity: { type: integer, example: 10 }
            unit: { type: string, enum: [kg, pieces, dozen, bunch], example: "kg" }
            harvest_date: { type: string, example: "2026-10-18" }
            shelf_life_days: { type: integer, example: 5 }
    responses:
      201:
        description: Listing created, with a market price comparison
      400:
        description: Invalid fields
      403:
        description: Caller is not a farmer
    """
    actor = current_user()
    market = get_marketplace()
    listing = market.catalog.create_listing(actor, CreateListingRequest.from_dict(request.get_json(silent=True)))

    return jsonify({
        "message": "Listing created successfully",
        "listing": listing_view(listing),
        "market": market_annotation(market.pricing, listing.crop_name, listing.price)
    }), 201


@marketplace_bp.route('/api/listings/<int:listing_id>', methods=['PUT'])
@jwt_required()
def edit_listing(listing_id):
    """
    Change price and/or quantity of your listing
    ---
    tags:
      - Marketplace
    security:
      - Bearer: []
    parameters:
      - name: listing_id
        in: path
        type: integer
        required: true
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            price: { type: number, example: 40 }
            quantity: { type: integer, example: 25 }
    responses:
      200:
        description: Listing updated
      403:
        description: Not your listing
      404:
        description: Listing not found
    """
    actor = current_user()
    market = get_marketplace()
    listing = market.catalog.update_listing(
        actor, listing_id, UpdateListingRequest.from_dict(request.get_json(silent=True))
    )

    return jsonify({
        "message": "Listing updated successfully",
        "listing": listing_view(listing),
        "market": market_annotation(market.pricing, listing.crop_name, listing.price)
    }), 200
