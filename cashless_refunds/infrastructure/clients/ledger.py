"""Ledger API client for authoritative card balances"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional
from urllib.parse import quote

import httpx

from cashless_refunds.config import settings
from cashless_refunds.domain.exceptions import LedgerUnavailableError
from cashless_refunds.infrastructure.observability.metrics import ledger_failure_counter, ledger_latency_histogram

logger = logging.getLogger(__name__)


class LedgerClient:
    """Client for the cashless ledger service"""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None, transport=None):
        self.base_url = (base_url or settings.ledger_api_base).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self.client = httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=transport)

    def get_balance(self, card_id: str) -> Optional[Decimal]:
        """
        Fetch the remaining balance of a card.

        Returns:
            Balance as Decimal, or None when the ledger has no such card

        Raises:
            LedgerUnavailableError: on network errors, timeouts, 5xx or a malformed body
        """
        try:
            with ledger_latency_histogram.time():
                response = self.client.get(f"/cards/{quote(card_id, safe='')}")
        except httpx.TimeoutException:
            ledger_failure_counter.inc()
            raise LedgerUnavailableError(
                "Ledger service timed out", details={"card_id": card_id}, upstream_status=504
            )
        except httpx.RequestError as e:
            ledger_failure_counter.inc()
            raise LedgerUnavailableError(f"Ledger service unreachable: {e}", details={"card_id": card_id})

        if response.status_code == 404:
            return None

        if response.status_code >= 400:
            ledger_failure_counter.inc()
            logger.error(
                "Ledger returned an error status",
                extra={"card_id": card_id, "status_code": response.status_code},
            )
            raise LedgerUnavailableError(
                f"Ledger service returned {response.status_code}",
                details={"card_id": card_id},
                upstream_status=response.status_code,
            )

        try:
            amount = response.json().get("amount")
            return None if amount is None else Decimal(str(amount))
        except (ValueError, AttributeError, InvalidOperation):
            ledger_failure_counter.inc()
            raise LedgerUnavailableError("Ledger returned a malformed balance", details={"card_id": card_id})

    def close(self) -> None:
        self.client.close()
