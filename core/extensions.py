from core.imports import Bcrypt, Swagger, JWTManager, SQLAlchemy, CORS, Migrate, current_app

jwt = JWTManager()
db = SQLAlchemy()
migrate = Migrate()
swagger = Swagger()
cors = CORS()
bcrypt = Bcrypt()


def get_marketplace():
    """The engine bound to the running app (set up in create_app)."""
    return current_app.extensions["marketplace"]
