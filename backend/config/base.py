from environs import Env

env = Env()


class BaseConfig:
    """Base configuration with production-safe defaults"""

    ENVIRONMENT = env.str("FLASK_ENV", "development")
    DEBUG = False
    TESTING = False

    # Core settings
    SECRET_KEY = env.str("SECRET_KEY", None)
    LOG_LEVEL = env.str("LOG_LEVEL", "INFO")
    MONGODB_URI = env.str("MONGODB_URI", "mongodb://localhost:27017/billing")
    MONGODB_SETTINGS = {
        "host": MONGODB_URI,
        "serverSelectionTimeoutMS": 30000,
        "connectTimeoutMS": 30000,
        "socketTimeoutMS": 30000,
        "maxPoolSize": 100,
        "retryWrites": True,
        "retryReads": True,
        "w": "majority",
    }

    # Billing rules
    DAILY_PENALTY_RATE = env.decimal("DAILY_PENALTY_RATE", "0.01")
    UTILITY_GRACE_DAYS = env.int("UTILITY_GRACE_DAYS", 5)
    AUTO_RENEW_THRESHOLD_DAYS = env.int("AUTO_RENEW_THRESHOLD_DAYS", 10)

    # Scheduled jobs
    ENABLE_SCHEDULER = env.bool("ENABLE_SCHEDULER", True)
    RENT_PENALTY_SWEEP_SECONDS = env.int("RENT_PENALTY_SWEEP_SECONDS", 60)
    UTILITY_PENALTY_SWEEP_MINUTES = env.int("UTILITY_PENALTY_SWEEP_MINUTES", 0)
    AUTO_RENEW_INTERVAL_SECONDS = env.int("AUTO_RENEW_INTERVAL_SECONDS", 15)

    # Payment gateway
    STRIPE_SECRET_KEY = env.str("STRIPE_SECRET_KEY", None)
    PAYMENT_CURRENCY = env.str("PAYMENT_CURRENCY", "usd")
    FRONTEND_BASE_URL = env.str("FRONTEND_BASE_URL", "http://localhost:3000")
    PAYMENT_SUCCESS_URL = env.str(
        "PAYMENT_SUCCESS_URL", f"{FRONTEND_BASE_URL}/payments/success"
    )
    PAYMENT_CANCEL_URL = env.str(
        "PAYMENT_CANCEL_URL", f"{FRONTEND_BASE_URL}/payments/cancel"
    )
