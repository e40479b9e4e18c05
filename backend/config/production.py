from environs import Env
from .base import BaseConfig

env = Env()


class ProductionConfig(BaseConfig):
    """Production configuration focused on reliability"""

    ENVIRONMENT = "production"
    DEBUG = False
    TESTING = False

    # Required in production, no defaults
    MONGODB_URI = env.str("MONGODB_URI")
    STRIPE_SECRET_KEY = env.str("STRIPE_SECRET_KEY")
    MONGODB_SETTINGS = dict(BaseConfig.MONGODB_SETTINGS, host=MONGODB_URI)

    # Force SSL
    PREFERRED_URL_SCHEME = "https"

    FRONTEND_BASE_URL = env.str("FRONTEND_BASE_URL", "https://app.example.com")
    PAYMENT_SUCCESS_URL = env.str(
        "PAYMENT_SUCCESS_URL", f"{FRONTEND_BASE_URL}/payments/success"
    )
    PAYMENT_CANCEL_URL = env.str(
        "PAYMENT_CANCEL_URL", f"{FRONTEND_BASE_URL}/payments/cancel"
    )

    PRESERVE_CONTEXT_ON_EXCEPTION = False
    PROPAGATE_EXCEPTIONS = True
