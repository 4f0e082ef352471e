from datetime import timedelta
import os
from dotenv import load_dotenv

load_dotenv()
class Config:
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///agromarket.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "dev-secret-change-me")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=24)

    # listings with a shelf life below this many days count as perishable
    PERISHABLE_THRESHOLD_DAYS = int(os.environ.get("PERISHABLE_THRESHOLD_DAYS", "7"))
    ORDER_FEED_SIZE = int(os.environ.get("ORDER_FEED_SIZE", "500"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    JWT_SECRET_KEY = "test-secret-key-that-is-long-enough"
    LOG_LEVEL = "WARNING"
