"""Unit tests for batch options"""

import pytest
from datetime import datetime
from decimal import Decimal
from cashless_refunds.domain.batch_policy import apply_batch_policy, summarize_dry_run
from cashless_refunds.domain.exceptions import InvalidRequestError, NoRefundsAvailableError
from cashless_refunds.domain.models import BatchOptions, ValidatedRefund, ValidationStatus


def make_refund(refund_id: int, status: ValidationStatus = ValidationStatus.VALID) -> ValidatedRefund:
    return ValidatedRefund(
        id=refund_id,
        created_at=datetime(2026, 7, 1, 12, 0, 0),
        first_name="Jean",
        last_name="Dupont",
        account="BE68539007547034",
        email="jean.dupont@example.com",
        card_id=f"CARD{refund_id:04d}",
        net_amount=Decimal("10.00"),
        validation_status=status,
    )


@pytest.fixture
def mixed_refunds():
    """5 valid refunds followed by 2 with warnings"""
    return [make_refund(i) for i in range(1, 6)] + [make_refund(i, ValidationStatus.WARNING) for i in (6, 7)]


def test_warnings_excluded_by_default(mixed_refunds):
    selection = apply_batch_policy(mixed_refunds, BatchOptions())

    assert [r.id for r in selection.refunds] == [1, 2, 3, 4, 5]
    assert selection.warnings_excluded == 2
    assert selection.total_amount == Decimal("50.00")


def test_warnings_included_on_request(mixed_refunds):
    selection = apply_batch_policy(mixed_refunds, BatchOptions(include_warnings=True))
    assert len(selection.refunds) == 7


def test_truncation_before_warning_filter(mixed_refunds):
    """Test max_candidates caps first, keeping source order"""
    selection = apply_batch_policy(list(reversed(mixed_refunds)), BatchOptions(max_candidates=3))

    assert [r.id for r in selection.refunds] == [5]
    assert selection.truncated_count == 4


def test_dry_run_reports_selection(mixed_refunds):
    """Test dry run with 5 valid + 2 warnings reports 5 transactions"""
    options = BatchOptions(dry_run=True)
    selection = apply_batch_policy(mixed_refunds, options)
    summary = summarize_dry_run(selection, validation_errors=3, total_time_ms=12.5)

    assert summary.message_id == "DRY_RUN"
    assert summary.transaction_count == 5
    assert summary.refunds_processed == 5
    assert summary.validation_errors == 3
    assert summary.total_amount == Decimal("50.00")


def test_everything_filtered_out():
    """Test only-warning input raises NoRefundsAvailableError with filtered_out reason"""
    refunds = [make_refund(1, ValidationStatus.WARNING)]

    with pytest.raises(NoRefundsAvailableError) as exc_info:
        apply_batch_policy(refunds, BatchOptions())

    assert exc_info.value.reason == NoRefundsAvailableError.FILTERED_OUT
    assert exc_info.value.details["original_count"] == 1
    assert exc_info.value.details["after_filtering"] == 0


@pytest.mark.parametrize("cap", [0, -3])
def test_non_positive_cap_rejected(mixed_refunds, cap: int):
    """Test a zero or negative cap is an invalid request, not 'no cap'"""
    with pytest.raises(InvalidRequestError):
        apply_batch_policy(mixed_refunds, BatchOptions(max_candidates=cap))
