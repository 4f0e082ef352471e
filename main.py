import logging

from core.imports import jsonify, Flask, click
from core.config import Config
from core.errors import MarketError, StorageError
from core.extensions import db, jwt, swagger, cors, bcrypt, migrate, get_marketplace
from models.userModel import Users
from routes.auth import auth_bp, seed_demo_users
from routes.marketplace import marketplace_bp, seed_demo_listings
from routes.orders import orders_bp
from routes.farmer import farmer_bp
from services.marketplace import Marketplace
from services.sql_store import SqlStore


def register_error_handlers(app):

    def handle_market_error(err):
        if isinstance(err, StorageError):
            app.logger.error("storage failure: %s (%s)", err.operation, err.cause)
            return jsonify({"error": err.code, "message": "Something went wrong, please try again"}), 500
        return jsonify(err.to_dict()), err.status_code

    app.register_error_handler(MarketError, handle_market_error)


def register_commands(app):

    @app.cli.command("init-db")
    def init_db():
        """Create all tables."""
        db.create_all()
        click.echo("Database tables created")

    @app.cli.command("seed-demo")
    def seed_demo():
        """Create demo users and listings."""
        db.create_all()
        seed_all()

    @app.cli.command("expire-listings")
    def expire_listings():
        """Mark listings past their expiry date as expired."""
        expired = get_marketplace().catalog.expire_stale()
        click.echo(f"{len(expired)} listing(s) expired")


def seed_all():
    seed_demo_users()
    farmer = Users.query.filter_by(email="demo@farmer.com").first()
    if farmer:
        seed_demo_listings(farmer)


def create_app(config=Config, marketplace=None):
    app = Flask(__name__)
    app.config.from_object(config)
    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    db.init_app(app)
    jwt.init_app(app)
    swagger.init_app(app)
    cors.init_app(app)
    bcrypt.init_app(app)
    migrate.init_app(app, db)

    if marketplace is None:
        marketplace = Marketplace(
            SqlStore(db),
            perishable_threshold_days=app.config["PERISHABLE_THRESHOLD_DAYS"],
            feed_size=app.config["ORDER_FEED_SIZE"],
        )
    app.extensions["marketplace"] = marketplace

    def log_order_event(event):
        app.logger.info(
            "order_event seq=%s kind=%s order_id=%s status=%s",
            event.sequence, event.kind, event.order_id, event.new_status.value if event.new_status else None,
        )

    marketplace.ledger.subscribe(log_order_event)

    app.register_blueprint(auth_bp)
    app.register_blueprint(marketplace_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(farmer_bp)

    register_error_handlers(app)
    register_commands(app)

    @app.route('/ping')
    def ping():
        return "Ping received", 200

    return app

app = create_app()


if __name__ == "__main__":
    with app.app_context():
        db.create_all()
        seed_all()

    app.run(debug=True)
