import atexit
import os
import sys
import stripe
from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask
from loguru import logger

from app.cli import register_cli
from services.billing_repository import BillingRepository
from services.mongodb_service import connect_db
from services.payment_gateway_service import PaymentGatewayService
from services.payment_service import PaymentService
from services.payment_transition_service import PaymentTransitionService
from services.penalty_service import PenaltyAccrualService
from services.renewal_service import RenewalService
from utils.error_handlers import log_error


def get_config_class():
    """
    Determine which configuration class to use based on environment.
    """
    env = os.getenv("FLASK_ENV", "development")
    logger.info(f"App config is: {env}")
    if env == "development":
        from config.development import DevelopmentConfig

        return DevelopmentConfig
    elif env == "production":
        from config.production import ProductionConfig

        return ProductionConfig
    elif env == "testing":
        from config.test import TestConfig

        return TestConfig
    else:
        raise ValueError(f"Invalid FLASK_ENV: {env}")


def create_services(config) -> dict:
    """
    Build the billing engine services from a config mapping.
    """
    stripe_client = stripe
    stripe_client.api_key = config.get("STRIPE_SECRET_KEY")
    gateway_service = PaymentGatewayService(
        stripe_client,
        currency=config.get("PAYMENT_CURRENCY", "usd"),
        success_url=config.get("PAYMENT_SUCCESS_URL"),
        cancel_url=config.get("PAYMENT_CANCEL_URL"),
    )

    repository = BillingRepository()
    penalty_service = PenaltyAccrualService(
        repository, daily_rate=config.get("DAILY_PENALTY_RATE")
    )
    transition_service = PaymentTransitionService(
        repository,
        penalty_service,
        utility_grace_days=config.get("UTILITY_GRACE_DAYS"),
    )
    renewal_service = RenewalService(
        repository,
        transition_service,
        threshold_days=config.get("AUTO_RENEW_THRESHOLD_DAYS"),
    )
    payment_service = PaymentService(repository, transition_service, gateway_service)

    return {
        "billing_repository": repository,
        "penalty_service": penalty_service,
        "transition_service": transition_service,
        "renewal_service": renewal_service,
        "gateway_service": gateway_service,
        "payment_service": payment_service,
    }


def start_scheduler(app) -> BackgroundScheduler:
    """
    Start the periodic billing jobs.

    The rent penalty sweep and auto-renewal always run; the utility sweep only
    runs on an interval when UTILITY_PENALTY_SWEEP_MINUTES is set.
    """
    services = app.extensions["services"]

    def sweep_rent_penalties():
        try:
            services["penalty_service"].sweep("rent")
        except Exception as e:
            log_error(e, "Scheduled rent penalty sweep failed")

    def sweep_utility_penalties():
        try:
            services["penalty_service"].sweep("utility")
        except Exception as e:
            log_error(e, "Scheduled utility penalty sweep failed")

    def auto_renew():
        try:
            services["renewal_service"].run()
        except Exception as e:
            log_error(e, "Scheduled auto-renewal failed")

    # Initialize scheduler
    scheduler = BackgroundScheduler(timezone="UTC")

    # Add jobs to scheduler
    scheduler.add_job(
        func=sweep_rent_penalties,
        trigger="interval",
        seconds=app.config["RENT_PENALTY_SWEEP_SECONDS"],
        id="rent_penalty_sweep",
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        func=auto_renew,
        trigger="interval",
        seconds=app.config["AUTO_RENEW_INTERVAL_SECONDS"],
        id="auto_renew",
        max_instances=1,
        coalesce=True,
    )
    if app.config.get("UTILITY_PENALTY_SWEEP_MINUTES"):
        scheduler.add_job(
            func=sweep_utility_penalties,
            trigger="interval",
            minutes=app.config["UTILITY_PENALTY_SWEEP_MINUTES"],
            id="utility_penalty_sweep",
            max_instances=1,
            coalesce=True,
        )

    # Start scheduler
    scheduler.start()

    # Register shutdown
    atexit.register(lambda: scheduler.shutdown(wait=False))
    return scheduler


def create_app(config_object=None):
    """
    Application factory pattern.
    Args:
        config_object: Configuration class to use. If None, determines from environment.
    """
    app = Flask(__name__)

    # Load environment-specific config
    if config_object is None:
        config_object = get_config_class()

    # Apply configuration
    app.config.from_object(config_object)

    logger.remove()
    logger.add(sys.stderr, level=app.config.get("LOG_LEVEL", "INFO"))

    # MongoDB setup
    connect_db(app)

    # Create a service registry
    app.extensions["services"] = create_services(app.config)

    register_cli(app)

    if app.config.get("ENABLE_SCHEDULER"):
        app.extensions["scheduler"] = start_scheduler(app)

    return app
