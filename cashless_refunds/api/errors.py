"""Error envelope and HTTP status mapping shared by routers and handlers"""

from typing import Any, Optional

from fastapi.responses import JSONResponse

from cashless_refunds.api.v1.schemas import ErrorResponse
from cashless_refunds.domain.exceptions import DomainException, ErrorCode, RefundDataError, UnauthorizedError

STATUS_BY_CODE = {
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.CONFIGURATION_ERROR: 400,
    ErrorCode.REFUND_DATA_ERROR: 500,
    ErrorCode.NO_REFUNDS_AVAILABLE: 400,
    ErrorCode.XML_GENERATION_ERROR: 500,
    ErrorCode.SERVER_ERROR: 500,
}


def status_for(code: ErrorCode, cause: Optional[DomainException] = None) -> int:
    if isinstance(cause, UnauthorizedError) and not cause.missing_credentials:
        return 403
    if isinstance(cause, RefundDataError) and cause.upstream_status:
        # Upstream 4xx would read as a fault in the operator's own request
        return cause.upstream_status if cause.upstream_status >= 500 else 502
    return STATUS_BY_CODE.get(code, 500)


def error_response(
    status_code: int,
    code: ErrorCode,
    message: str,
    request_id: str,
    details: Optional[Any] = None,
) -> JSONResponse:
    body = ErrorResponse(error=message, error_code=code.value, details=details, request_id=request_id)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers={"X-Request-ID": request_id},
    )
