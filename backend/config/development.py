from environs import Env
from .base import BaseConfig

env = Env()


class DevelopmentConfig(BaseConfig):
    """Local development: verbose logging, relaxed Mongo timeouts"""

    ENVIRONMENT = "development"
    DEBUG = True

    LOG_LEVEL = env.str("LOG_LEVEL", "DEBUG")
    MONGODB_SETTINGS = dict(
        BaseConfig.MONGODB_SETTINGS,
        serverSelectionTimeoutMS=5000,
        w=1,
    )
