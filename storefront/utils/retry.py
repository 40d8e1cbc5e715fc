# storefront/utils/retry.py
from tenacity import retry, stop_after_attempt, wait_fixed, retry_if_exception_type

from storefront.utils.settings import INVOICE_MAX_ATTEMPTS, INVOICE_RETRY_WAIT_SECONDS


class InvoiceCollision(Exception):
    """Candidate invoice number is already taken by an existing order."""

    def __init__(self, invoice_no: int):
        super().__init__(f"Invoice number {invoice_no} already exists")
        self.invoice_no = invoice_no


def invoice_retry(attempts: int = INVOICE_MAX_ATTEMPTS, wait: float = INVOICE_RETRY_WAIT_SECONDS):
    # no reraise: exhaustion surfaces as tenacity.RetryError
    return retry(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(wait),
        retry=retry_if_exception_type(InvoiceCollision),
    )
