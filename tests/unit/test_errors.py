"""Unit tests for error code to HTTP status mapping"""

import pytest
from cashless_refunds.api.errors import status_for
from cashless_refunds.domain.exceptions import (
    ConfigurationError,
    ErrorCode,
    LedgerUnavailableError,
    UnauthorizedError,
)


@pytest.mark.parametrize("upstream, expected", [(503, 503), (504, 504), (500, 500), (401, 502), (403, 502), (429, 502)])
def test_upstream_status_passthrough_only_for_5xx(upstream: int, expected: int):
    """Test ledger client errors never surface as the caller's own 4xx"""
    cause = LedgerUnavailableError("Ledger service returned an error", upstream_status=upstream)
    assert status_for(ErrorCode.REFUND_DATA_ERROR, cause) == expected


def test_refund_data_error_without_upstream_status():
    cause = LedgerUnavailableError("Ledger service unreachable")
    assert status_for(ErrorCode.REFUND_DATA_ERROR, cause) == 500


def test_unauthorized_statuses():
    assert status_for(ErrorCode.UNAUTHORIZED, UnauthorizedError("missing", missing_credentials=True)) == 401
    assert status_for(ErrorCode.UNAUTHORIZED, UnauthorizedError("unknown", missing_credentials=False)) == 403


def test_configuration_error_is_400():
    assert status_for(ErrorCode.CONFIGURATION_ERROR, ConfigurationError("bad payer")) == 400
