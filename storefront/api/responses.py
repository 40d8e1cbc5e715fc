# storefront/api/responses.py
from typing import Any, Optional

from fastapi import Query, Request
from fastapi.responses import JSONResponse

from storefront.data.error_classifier import friendly_message
from storefront.domain.results import ErrorKind, Result
from storefront.domain.validation import resolve_owner, validate_ip_address

STATUS_BY_KIND = {
    ErrorKind.VALIDATION_ERROR: 422,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.ORPHANED_PRODUCT: 409,
    ErrorKind.DUPLICATE_ENTRY: 409,
    ErrorKind.PAYMENT_FAILED: 402,
}


def status_for(result: Result, success_status: int = 200) -> int:
    if result.success:
        return success_status
    if result.error.retryable:
        return 503
    return STATUS_BY_KIND.get(result.kind, 500)


def to_response(result: Result, success_status: int = 200, context: str = "cart") -> JSONResponse:
    content: dict[str, Any] = result.model_dump(mode="json", exclude_none=False)
    if not result.success:
        content["message"] = friendly_message(result.kind, context)
    return JSONResponse(status_code=status_for(result, success_status), content=content)


def request_owner(
    request: Request,
    customer_id: Optional[str] = Query(default=None),
    ip_address: Optional[str] = Query(default=None),
) -> Result:
    """Cart owner from the query string, falling back to the client address."""
    if customer_id is None and ip_address is None and request.client is not None:
        if validate_ip_address(request.client.host).success:
            ip_address = request.client.host
    return resolve_owner(customer_id, ip_address)
