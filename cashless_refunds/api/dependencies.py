"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from cashless_refunds.config import settings
from cashless_refunds.domain.authentication import OperatorAuthenticator
from cashless_refunds.domain.pipeline import RefundBatchPipeline
from cashless_refunds.infrastructure.clients.ledger import LedgerClient
from cashless_refunds.infrastructure.database.repositories import CardRepository, RefundRepository
from cashless_refunds.infrastructure.database.session import get_db


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_authenticator() -> OperatorAuthenticator:
    """Provide authenticator over the configured admin keys"""
    return OperatorAuthenticator(settings.admin_api_keys)


def get_ledger(db: Session = Depends(get_db)):
    """Provide the ledger store selected by LEDGER_BACKEND"""
    if settings.ledger_backend == "http":
        client = LedgerClient()
        try:
            yield client
        finally:
            client.close()
    else:
        yield CardRepository(db)


def get_pipeline(
    db: Session = Depends(get_db),
    ledger=Depends(get_ledger),
    authenticator: OperatorAuthenticator = Depends(get_authenticator),
) -> RefundBatchPipeline:
    """Provide a request-scoped refund batch pipeline"""
    refunds = RefundRepository(db)
    return RefundBatchPipeline(
        candidate_source=refunds,
        ledger=ledger,
        state_store=refunds,
        authenticator=authenticator,
        processing_fee=settings.processing_fee,
        minimum_refund=settings.minimum_refund,
        maximum_refund=settings.maximum_refund,
        default_bank_code=settings.default_bank_code,
        remittance_information=settings.remittance_information,
        payer_countries=settings.supported_payer_countries,
        account_countries=settings.supported_account_countries,
    )
