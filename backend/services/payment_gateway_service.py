from decimal import ROUND_HALF_UP, Decimal

import stripe
from loguru import logger


class PaymentGatewayService:
    def __init__(
        self,
        stripe_client,
        currency="usd",
        success_url="http://localhost:3000/payments/success",
        cancel_url="http://localhost:3000/payments/cancel",
    ):
        self.stripe_client = stripe_client
        self.currency = currency
        self.success_url = success_url
        self.cancel_url = cancel_url

    @staticmethod
    def to_minor_units(amount):
        """Converts an amount to the integer cents Stripe expects."""
        cents = (Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return int(cents)

    # Create Checkout Session
    def initialize_transaction(
        self, amount, customer_email, tx_ref, description=None, metadata=None
    ):
        """
        Creates a one-off checkout session for a bill payment.

        Returns:
            dict with the hosted ``checkout_url`` and the ``session_id`` used
            later to verify the payment
        """
        try:
            logger.info(
                f"Creating a checkout session for {customer_email} with tx_ref {tx_ref}"
            )
            session_params = {
                "payment_method_types": ["card"],
                "line_items": [
                    {
                        "price_data": {
                            "currency": self.currency,
                            "unit_amount": self.to_minor_units(amount),
                            "product_data": {"name": description or tx_ref},
                        },
                        "quantity": 1,
                    }
                ],
                "mode": "payment",
                "client_reference_id": tx_ref,
                "metadata": dict(metadata or {}, tx_ref=tx_ref),
                "success_url": self.success_url,
                "cancel_url": self.cancel_url,
            }
            if customer_email:
                session_params["customer_email"] = customer_email

            session = self.stripe_client.checkout.Session.create(**session_params)

            logger.info(f"Checkout session created successfully with ID: {session.id}")
            return {"checkout_url": session.url, "session_id": session.id}

        except stripe.StripeError as e:
            logger.error(f"Stripe API error: {e}")
            raise e

    # Verify Checkout Session
    def verify_transaction(self, session_id):
        """Returns True only when the gateway reports the session as paid."""
        try:
            session = self.stripe_client.checkout.Session.retrieve(session_id)
        except stripe.StripeError as e:
            logger.error(f"Error retrieving checkout session {session_id}: {e}")
            raise e

        status = session.get("payment_status")
        logger.info(f"Checkout session {session_id} payment status: {status}")
        return status == "paid"
