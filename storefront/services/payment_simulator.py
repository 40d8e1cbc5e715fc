# storefront/services/payment_simulator.py
"""
Simulated payment step of checkout.

No money moves anywhere: the simulation_* methods let a caller exercise
the declined and timed out paths, every other method is accepted and only
recorded on the payment row.
"""
import random
from typing import Callable, Sequence

from storefront.domain.results import ErrorKind, Result
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

DECLINE_REASONS = (
    "Payment declined by bank. Please check your card details.",
    "Insufficient funds. Please try a different payment method.",
    "Card expired. Please use a valid payment method.",
    "Payment processor temporarily unavailable. Please try again later.",
    "Transaction limit exceeded. Please contact your bank.",
)

TIMEOUT_MESSAGE = "Payment processing timed out. Please try again."


def simulate_payment(
    payment_method: str,
    customer_id: int,
    choose: Callable[[Sequence[str]], str] = random.choice,
) -> Result:
    if payment_method == "simulated_failure":
        reason = choose(DECLINE_REASONS)
        logger.info(f"Simulating payment failure for customer {customer_id}: {reason}")
        return Result.fail(
            ErrorKind.PAYMENT_FAILED,
            reason,
            payment_method=payment_method,
            customer_id=customer_id,
        )

    if payment_method == "simulated_timeout":
        logger.info(f"Simulating payment timeout for customer {customer_id}")
        return Result.fail(
            ErrorKind.PAYMENT_FAILED,
            TIMEOUT_MESSAGE,
            payment_method=payment_method,
            customer_id=customer_id,
        )

    logger.info(f"Payment accepted for customer {customer_id} via {payment_method}")
    return Result.ok({"payment_method": payment_method, "status": "accepted"})
