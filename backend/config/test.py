from decimal import Decimal

from environs import Env

env = Env()


class TestConfig:
    """Test configuration: in-memory Mongo, no scheduler, fake gateway keys"""

    TESTING = True
    DEBUG = False

    # Core settings
    FLASK_ENV = env.str("FLASK_ENV", default="testing")
    SECRET_KEY = env.str("SECRET_KEY", default="test_secret_key")
    LOG_LEVEL = env.str("LOG_LEVEL", default="WARNING")

    # Database settings
    MONGODB_URI = env.str("MONGODB_URI", default="mongodb://localhost/billing_test")
    MONGODB_SETTINGS = {
        "host": MONGODB_URI,
        "serverSelectionTimeoutMS": 2000,
    }

    # Billing rules
    DAILY_PENALTY_RATE = Decimal("0.01")
    UTILITY_GRACE_DAYS = 5
    AUTO_RENEW_THRESHOLD_DAYS = 10

    # Scheduled jobs never run under test
    ENABLE_SCHEDULER = False
    RENT_PENALTY_SWEEP_SECONDS = 60
    UTILITY_PENALTY_SWEEP_MINUTES = 0
    AUTO_RENEW_INTERVAL_SECONDS = 15

    # Payment gateway
    STRIPE_SECRET_KEY = env.str("STRIPE_SECRET_KEY", default="sk_test")
    PAYMENT_CURRENCY = "usd"
    PAYMENT_SUCCESS_URL = "http://localhost:3000/payments/success"
    PAYMENT_CANCEL_URL = "http://localhost:3000/payments/cancel"
