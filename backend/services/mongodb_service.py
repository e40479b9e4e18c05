import time
from loguru import logger
from pymongo.errors import ServerSelectionTimeoutError
from mongoengine import connect, disconnect_all

from models.bill import Bill
from models.payment_event import PaymentEvent
from models.tenant import Tenant
from models.utility_rate import UtilityRate

DOCUMENTS = [Tenant, UtilityRate, Bill, PaymentEvent]


def ensure_indexes():
    """Create the declared indexes, including the unique bill cycle key."""
    for document in DOCUMENTS:
        document.ensure_indexes()


def connect_db(app, max_retries=5, retry_delay=10, **client_options):
    """
    Initialize MongoDB connection with retry logic.

    Args:
        app: Flask application instance
        max_retries: Maximum number of connection attempts
        retry_delay: Delay between retries in seconds
        client_options: Extra keyword arguments for ``mongoengine.connect``

    Raises:
        ServerSelectionTimeoutError: If connection fails after max retries
    """
    # Always disconnect existing connections first
    disconnect_all()

    settings = dict(app.config["MONGODB_SETTINGS"], **client_options)
    mongodb_uri = settings.get("host", app.config["MONGODB_URI"])
    host = mongodb_uri.split("@")[-1]  # Log only the host part, not credentials
    logger.info(f"Attempting to connect to MongoDB at: {host}")

    retries = 0
    while retries < max_retries:
        try:
            connection = connect(alias="default", **settings)
            # Test the connection
            connection.admin.command("ping")
            ensure_indexes()
            logger.info("MongoDB connected successfully")
            return connection
        except ServerSelectionTimeoutError as e:
            retries += 1
            logger.warning(
                f"Attempt {retries}/{max_retries}: MongoDB connection failed with error: {e}. "
                f"Retrying in {retry_delay} seconds...\n"
                f"Connection details: Host={host}, "
                f"Timeout={settings.get('serverSelectionTimeoutMS')}ms"
            )
            time.sleep(retry_delay)
            # Ensure clean state before retry
            disconnect_all()

    error_msg = (
        f"MongoDB connection failed after {max_retries} attempts. "
        f"Last known connection details: Host={host}, "
        f"Timeout={settings.get('serverSelectionTimeoutMS')}ms"
    )
    logger.error(error_msg)
    raise ServerSelectionTimeoutError(error_msg)
