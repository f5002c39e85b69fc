"""Candidate enrichment - re-derives refund amounts from authoritative card balances"""

import logging
import time
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Protocol

from cashless_refunds.domain.iban import is_valid_account, normalize_account
from cashless_refunds.domain.sanitizer import CENT
from cashless_refunds.domain.models import (
    EnrichmentResult,
    EnrichmentSummary,
    IssueType,
    RawCandidate,
    ValidatedRefund,
    ValidationIssue,
    ValidationStatus,
)

logger = logging.getLogger(__name__)


class LedgerStore(Protocol):
    """Read-only view of card balances"""

    def get_balance(self, card_id: str) -> Optional[Decimal]:
        ...


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


class CandidateEnrichmentService:
    """
    Turns raw reimbursement requests into refunds ready for export.

    Requirements:
    - Each candidate stops at its first failing check
    - Refund amount = ledger balance - processing fee, never a caller-declared value
    - Results below the minimum refund are rejected, not rounded up
    - A second request for an already-claimed card is kept with a warning
    """

    def __init__(
        self,
        ledger: LedgerStore,
        processing_fee: Decimal,
        minimum_refund: Decimal,
        allowed_countries: Optional[Iterable[str]] = None,
    ):
        self.ledger = ledger
        self.processing_fee = processing_fee
        self.minimum_refund = minimum_refund
        self.allowed_countries = list(allowed_countries) if allowed_countries is not None else None

    def enrich(self, candidates: List[RawCandidate]) -> EnrichmentResult:
        """
        Validate every candidate and compute its net refund.

        Raises:
            LedgerUnavailableError: propagated from the ledger store
        """
        start_time = time.perf_counter()
        valid_refunds: List[ValidatedRefund] = []
        issues: List[ValidationIssue] = []
        claimed_cards: Dict[str, int] = {}

        for candidate in candidates:
            outcome = self._enrich_one(candidate, claimed_cards)
            if isinstance(outcome, ValidationIssue):
                issues.append(outcome)
                continue
            claimed_cards.setdefault(outcome.card_id, outcome.id)
            valid_refunds.append(outcome)

        total_amount = sum((r.net_amount for r in valid_refunds), Decimal("0.00"))
        duration_ms = (time.perf_counter() - start_time) * 1000

        summary = EnrichmentSummary(
            total_refunds=len(candidates),
            valid_refunds=len(valid_refunds),
            error_count=len(issues),
            total_amount=total_amount,
            processing_time_ms=duration_ms,
        )

        issues_by_type: Dict[str, int] = {}
        for issue in issues:
            issues_by_type[issue.error_type.value] = issues_by_type.get(issue.error_type.value, 0) + 1

        logger.info(
            "Enrichment completed",
            extra={
                "step": "enrichment",
                "total_refunds": summary.total_refunds,
                "valid_refunds": summary.valid_refunds,
                "error_count": summary.error_count,
                "issues_by_type": issues_by_type,
                "total_amount": str(total_amount),
                "duration_ms": duration_ms,
            },
        )

        return EnrichmentResult(valid_refunds=valid_refunds, validation_errors=issues, summary=summary)

    def _enrich_one(self, candidate: RawCandidate, claimed_cards: Dict[str, int]):
        if _is_blank(candidate.first_name) or _is_blank(candidate.last_name) or _is_blank(candidate.email):
            return self._issue(
                candidate,
                IssueType.INVALID_DATA,
                "Missing required personal information (name or email)",
            )

        if _is_blank(candidate.card_id):
            return self._issue(candidate, IssueType.INVALID_DATA, "Missing card identifier")

        if not is_valid_account(candidate.account, self.allowed_countries):
            return self._issue(candidate, IssueType.INVALID_DATA, "Invalid or missing IBAN format")

        card_id = candidate.card_id.strip()
        balance = self.ledger.get_balance(card_id)
        if balance is None:
            return self._issue(candidate, IssueType.MISSING_CARD, f"No card found for card id: {card_id}")
        if balance <= 0:
            return self._issue(
                candidate,
                IssueType.MISSING_CARD,
                f"Card {card_id} has no refundable balance ({balance:.2f} EUR)",
            )

        balance = balance.quantize(CENT, rounding=ROUND_HALF_UP)
        net_amount = balance - self.processing_fee
        if net_amount < self.minimum_refund:
            shortfall = self.minimum_refund - net_amount
            return self._issue(
                candidate,
                IssueType.INVALID_DATA,
                f"Final refund amount ({net_amount:.2f} EUR) after {self.processing_fee:.2f} EUR "
                f"processing fee is {shortfall:.2f} EUR short of the minimum {self.minimum_refund:.2f} EUR",
            )

        status = ValidationStatus.VALID
        notes = [
            f"{self.processing_fee:.2f} EUR processing fee deducted from card balance {balance:.2f} EUR"
        ]
        if card_id in claimed_cards:
            status = ValidationStatus.WARNING
            notes.append(f"Card {card_id} is also claimed by refund request {claimed_cards[card_id]}")

        return ValidatedRefund(
            id=candidate.id,
            created_at=candidate.created_at,
            first_name=candidate.first_name.strip(),
            last_name=candidate.last_name.strip(),
            account=normalize_account(candidate.account),
            email=candidate.email.strip(),
            card_id=card_id,
            net_amount=net_amount,
            validation_status=status,
            validation_notes=notes,
        )

    @staticmethod
    def _issue(candidate: RawCandidate, error_type: IssueType, message: str) -> ValidationIssue:
        logger.debug(
            "Candidate rejected",
            extra={"refund_id": candidate.id, "error_type": error_type.value, "reason": message},
        )
        return ValidationIssue(
            refund_id=candidate.id,
            error_type=error_type,
            error_message=message,
            refund_data=candidate.as_dict(),
        )
