from core.imports import Blueprint, jsonify, request, create_access_token, jwt_required, get_jwt_identity, get_jwt, current_app, IntegrityError, func
from core.extensions import db, bcrypt
from core.errors import AuthorizationError, ValidationError
from models.userModel import Users
from services.domain import Actor, Role

auth_bp = Blueprint('auth', __name__)

SELF_SERVICE_ROLES = {Role.FARMER.value, Role.BUYER.value, Role.DELIVERY.value}

DEMO_USERS = [
    {
        "name": "Ramesh Patil",
        "email": "demo@farmer.com",
        "role": "farmer",
        "phone": "+91 98765 43210",
        "address": "Survey No. 12, Khed",
        "city": "Pune",
        "state": "Maharashtra",
        "zip": "410505",
    },
    {
        "name": "Anita Sharma",
        "email": "demo@buyer.com",
        "role": "buyer",
        "phone": "+91 98123 45678",
        "address": "Flat 4B, Baner Road",
        "city": "Pune",
        "state": "Maharashtra",
        "zip": "411045",
    },
    {
        "name": "Vikram Singh",
        "email": "demo@delivery.com",
        "role": "delivery",
        "phone": "+91 99220 11223",
        "city": "Pune",
        "state": "Maharashtra",
    },
]


def current_user():
    """The authenticated caller, built from the JWT identity and claims."""
    claims = get_jwt()
    try:
        role = Role(claims.get("role"))
    except ValueError:
        raise AuthorizationError("Token carries no valid role")
    return Actor(id=int(get_jwt_identity()), role=role, name=claims.get("name", ""))


def issue_token(user):
    return create_access_token(
        identity=str(user.id),
        additional_claims={"role": user.role, "name": user.name}
    )


def user_to_dict(user):
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "phone": user.phone,
        "location": {
            "address": user.address,
            "city": user.city,
            "state": user.state,
            "zip": user.zip,
        },
    }


def seed_demo_users():
    raw_password = "password123"  # demo login password
    for data in DEMO_USERS:
        if Users.query.filter_by(email=data["email"]).first():
            current_app.logger.info("Demo %s already exists.", data["role"])
            continue
        user = Users(password=bcrypt.generate_password_hash(raw_password).decode('utf-8'), **data)
        db.session.add(user)
        current_app.logger.info("Demo %s created (email=%s, password=%s)", data["role"], data["email"], raw_password)
    db.session.commit()


@auth_bp.route('/api/auth/register', methods=['POST'])
def register():
    """
    Register a farmer, buyer or delivery partner
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - name
            - email
            - password
            - role
          properties:
            name:
              type: string
              example: "Ramesh Patil"
            email:
              type: string
              example: "ramesh@example.com"
            password:
              type: string
              example: "secret123"
            role:
              type: string
              enum: [farmer, buyer, delivery]
              example: "farmer"
            phone:
              type: string
              example: "+91 98765 43210"
            location:
              type: object
              properties:
                address: { type: string, example: "Survey No. 12, Khed" }
                city: { type: string, example: "Pune" }
                state: { type: string, example: "Maharashtra" }
                zip: { type: string, example: "410505" }
    responses:
      201:
        description: Account created, token issued
      400:
        description: Missing or invalid fields
      409:
        description: Email already registered
    """
    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password')
    role = data.get('role', Role.BUYER.value)
    location = data.get('location') or {}

    if not all([name, email, password]):
        raise ValidationError("name, email and password are required")
    if role not in SELF_SERVICE_ROLES:
        raise ValidationError("role must be one of: farmer, buyer, delivery", field="role")

    if Users.query.filter(func.lower(Users.email) == email).first():
        return jsonify({"error": "conflict", "message": "Account with this email already exists"}), 409

    user = Users(
        name=name,
        email=email,
        password=bcrypt.generate_password_hash(password).decode('utf-8'),
        role=role,
        phone=data.get('phone'),
        address=location.get('address'),
        city=location.get('city'),
        state=location.get('state'),
        zip=location.get('zip'),
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"error": "conflict", "message": "Account with this email already exists"}), 409

    current_app.logger.info("user_registered id=%s role=%s", user.id, user.role)
    return jsonify({
        "message": "Account created",
        "access_token": issue_token(user),
        "user": user_to_dict(user)
    }), 201


@auth_bp.route('/api/auth/login', methods=['POST'])
def login():
    """
    Log in with email and password
    ---
    tags:
      - Auth
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            email: { type: string, example: "demo@farmer.com" }
            password: { type: string, example: "password123" }
    responses:
      200:
        description: Token issued
      401:
        description: Invalid credentials
    """
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    user = Users.query.filter(func.lower(Users.email) == email).first()
    if not user or not bcrypt.check_password_hash(user.password, password):
        return jsonify({"error": "invalid_credentials", "message": "Invalid email or password"}), 401

    return jsonify({
        "access_token": issue_token(user),
        "role": user.role,
        "user": user_to_dict(user)
    }), 200


@auth_bp.route('/api/auth/me', methods=['GET'])
@jwt_required()
def me():
    actor = current_user()
    user = db.session.get(Users, actor.id)
    if not user:
        return jsonify({"error": "not_found", "message": "User not found"}), 404
    return jsonify(user_to_dict(user)), 200
