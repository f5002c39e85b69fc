"""Caller-selected batch limits applied between enrichment and generation"""

import logging
from typing import List

from cashless_refunds.domain.exceptions import InvalidRequestError, NoRefundsAvailableError
from cashless_refunds.domain.models import (
    BatchOptions,
    BatchSelection,
    DryRunSummary,
    ValidatedRefund,
    ValidationStatus,
)

logger = logging.getLogger(__name__)


def apply_batch_policy(refunds: List[ValidatedRefund], options: BatchOptions) -> BatchSelection:
    """
    Apply ``max_candidates`` then the warning filter, keeping source order.

    Truncation happens first, so a batch capped at N may end up smaller
    than N once warnings are removed.

    Raises:
        InvalidRequestError: max_candidates is zero or negative
        NoRefundsAvailableError: nothing is left after filtering
    """
    if options.max_candidates is not None and options.max_candidates <= 0:
        raise InvalidRequestError(
            f"max_candidates must be a positive integer, got {options.max_candidates}",
            details={"max_candidates": options.max_candidates},
        )

    selected = list(refunds)
    truncated = 0

    if options.max_candidates is not None:
        truncated = max(len(selected) - options.max_candidates, 0)
        selected = selected[: options.max_candidates]

    warnings_excluded = 0
    if not options.include_warnings:
        kept = [r for r in selected if r.validation_status != ValidationStatus.WARNING]
        warnings_excluded = len(selected) - len(kept)
        selected = kept

    if truncated or warnings_excluded:
        logger.info(
            "Batch policy applied",
            extra={
                "step": "batch_policy",
                "original_count": len(refunds),
                "truncated": truncated,
                "warnings_excluded": warnings_excluded,
                "selected": len(selected),
            },
        )

    if not selected:
        raise NoRefundsAvailableError(
            "No refunds available after applying processing filters",
            reason=NoRefundsAvailableError.FILTERED_OUT,
            details={
                "original_count": len(refunds),
                "after_filtering": 0,
                "batch_options": {
                    "max_candidates": options.max_candidates,
                    "include_warnings": options.include_warnings,
                    "dry_run": options.dry_run,
                },
            },
        )

    return BatchSelection(
        refunds=selected,
        original_count=len(refunds),
        truncated_count=truncated,
        warnings_excluded=warnings_excluded,
    )


def summarize_dry_run(selection: BatchSelection, validation_errors: int, total_time_ms: float) -> DryRunSummary:
    """Report what a real run would export, without building or marking anything"""
    return DryRunSummary(
        transaction_count=len(selection.refunds),
        total_amount=selection.total_amount,
        refunds_processed=len(selection.refunds),
        validation_errors=validation_errors,
        generation_time_ms=0.0,
        total_time_ms=total_time_ms,
    )
