"""Data access layer for refund requests and card balances"""

from decimal import Decimal
from typing import List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cashless_refunds.domain.exceptions import LedgerUnavailableError, RefundDataError, StateStoreError
from cashless_refunds.domain.models import RawCandidate
from cashless_refunds.infrastructure.database.models import Card, RefundRequest


class RefundRepository:
    """Candidate source and export-flag store over the refunds table"""

    def __init__(self, db: Session):
        self.db = db

    def list_unexported(self) -> List[RawCandidate]:
        """Fetch requests without a generated file, newest first"""
        try:
            rows = (
                self.db.query(RefundRequest)
                .filter(RefundRequest.file_generated.is_(False))
                .order_by(RefundRequest.created_at.desc(), RefundRequest.id.desc())
                .all()
            )
        except SQLAlchemyError as e:
            raise RefundDataError("Failed to fetch refund requests", details={"reason": str(e)})

        return [
            RawCandidate(
                id=row.id,
                created_at=row.created_at,
                first_name=row.first_name,
                last_name=row.last_name,
                account=row.account,
                email=row.email,
                card_id=row.id_card,
                exported=row.file_generated,
            )
            for row in rows
        ]

    def mark_exported(self, refund_ids: List[int]) -> Set[int]:
        """Set file_generated on the ids not flagged yet; returns the ids changed"""
        if not refund_ids:
            return set()
        try:
            updated: Set[int] = set()
            for refund_id in dict.fromkeys(refund_ids):
                # Flag test and set in one statement; a row flagged by another request matches nothing
                rowcount = (
                    self.db.query(RefundRequest)
                    .filter(RefundRequest.id == refund_id, RefundRequest.file_generated.is_(False))
                    .update({RefundRequest.file_generated: True}, synchronize_session=False)
                )
                if rowcount == 1:
                    updated.add(refund_id)
            self.db.commit()
            return updated
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StateStoreError("Failed to update export flags", details={"reason": str(e)})

    def exported_ids(self, refund_ids: List[int]) -> Set[int]:
        if not refund_ids:
            return set()
        try:
            return {
                row.id
                for row in self.db.query(RefundRequest.id)
                .filter(RefundRequest.id.in_(refund_ids), RefundRequest.file_generated.is_(True))
                .all()
            }
        except SQLAlchemyError as e:
            raise StateStoreError("Failed to read export flags", details={"reason": str(e)})


class CardRepository:
    """Ledger store backed by the cards table"""

    def __init__(self, db: Session):
        self.db = db

    def get_balance(self, card_id: str) -> Optional[Decimal]:
        try:
            card = self.db.query(Card).filter(Card.id == card_id).first()
        except SQLAlchemyError as e:
            raise LedgerUnavailableError("Failed to read card balance", details={"card_id": card_id, "reason": str(e)})
        if card is None or card.amount is None:
            return None
        return Decimal(str(card.amount))
