"""Flip export flags for the refunds written to a payment document"""

import logging
from typing import List, Protocol, Set

from cashless_refunds.domain.exceptions import StateStoreError
from cashless_refunds.domain.models import CompletionReport

logger = logging.getLogger(__name__)

REMEDIATION = (
    "Compare the document's EndToEndId values with the export flags of the refunds table "
    "and set the missing flags manually before the next export"
)


class StateStore(Protocol):
    """Persistent export flags keyed by refund id"""

    def mark_exported(self, refund_ids: List[int]) -> Set[int]:
        """Set the flag on ids not yet exported; return the ids changed now"""
        ...

    def exported_ids(self, refund_ids: List[int]) -> Set[int]:
        """Return the subset of ids whose flag is set"""
        ...


class CompletionMarker:
    """
    Records that a document was produced for a set of refunds.

    A shortfall never fails the request: the document already exists, so
    the mismatch is reported for manual reconciliation instead.
    """

    def __init__(self, state_store: StateStore):
        self.state_store = state_store

    def mark(self, refund_ids: List[int]) -> CompletionReport:
        requested = list(dict.fromkeys(refund_ids))
        if not requested:
            return CompletionReport(requested=[], updated=[])

        try:
            updated = self.state_store.mark_exported(requested)
        except StateStoreError as e:
            logger.error(
                f"Export flags could not be written: {e.message}",
                extra={"step": "completion", "refund_ids": requested, "remediation": REMEDIATION},
            )
            return CompletionReport(requested=requested, updated=[], missing=requested)

        updated_ids = [i for i in requested if i in updated]
        if len(updated_ids) == len(requested):
            logger.info("Export flags set", extra={"step": "completion", "updated": len(updated_ids)})
            return CompletionReport(requested=requested, updated=updated_ids)

        shortfall = [i for i in requested if i not in updated]
        try:
            flagged = self.state_store.exported_ids(shortfall)
        except StateStoreError as e:
            logger.error(
                f"Export flags could not be verified: {e.message}",
                extra={"step": "completion", "refund_ids": shortfall, "remediation": REMEDIATION},
            )
            return CompletionReport(requested=requested, updated=updated_ids, missing=shortfall)

        already_exported = [i for i in shortfall if i in flagged]
        missing = [i for i in shortfall if i not in flagged]

        logger.warning(
            "Export flags only partially set",
            extra={
                "step": "completion",
                "requested": len(requested),
                "updated": len(updated_ids),
                "already_exported": already_exported,
                "missing": missing,
                "remediation": REMEDIATION,
            },
        )
        return CompletionReport(
            requested=requested,
            updated=updated_ids,
            already_exported=already_exported,
            missing=missing,
        )
