"""Unit tests for the refund batch pipeline"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Set
from cashless_refunds.domain.authentication import OperatorAuthenticator
from cashless_refunds.domain.exceptions import (
    ErrorCode,
    InvalidTransitionError,
    LedgerUnavailableError,
    NoRefundsAvailableError,
)
from cashless_refunds.domain.models import BatchOptions, PayerConfig, RawCandidate
from cashless_refunds.domain.pipeline import (
    BatchRequest,
    PipelineError,
    PipelineRun,
    PipelineState,
    RefundBatchPipeline,
)

API_KEY = "secret"


class FakeRefundStore:
    """Candidate source and state store in one, like the refunds table"""

    def __init__(self, candidates: List[RawCandidate]):
        self.candidates = candidates
        self.exported: Set[int] = set()
        self.list_calls = 0

    def list_unexported(self) -> List[RawCandidate]:
        self.list_calls += 1
        return [c for c in self.candidates if c.id not in self.exported]

    def mark_exported(self, refund_ids: List[int]) -> Set[int]:
        pending = {i for i in refund_ids if i not in self.exported}
        self.exported |= pending
        return pending

    def exported_ids(self, refund_ids: List[int]) -> Set[int]:
        return {i for i in refund_ids if i in self.exported}


class FakeLedger:
    def __init__(self, balances: Dict[str, Decimal], fail: bool = False):
        self.balances = balances
        self.fail = fail

    def get_balance(self, card_id: str) -> Optional[Decimal]:
        if self.fail:
            raise LedgerUnavailableError("Ledger service returned 502", upstream_status=502)
        return self.balances.get(card_id)


def make_pipeline(store: FakeRefundStore, ledger: FakeLedger) -> RefundBatchPipeline:
    return RefundBatchPipeline(
        candidate_source=store,
        ledger=ledger,
        state_store=store,
        authenticator=OperatorAuthenticator([API_KEY]),
        processing_fee=Decimal("2.00"),
        minimum_refund=Decimal("2.00"),
        maximum_refund=Decimal("999999999.99"),
        default_bank_code="GKCCBEBB",
        remittance_information="Remboursement Les Aperos du chateau",
        payer_countries=["BE"],
        clock=lambda: datetime(2026, 7, 1, 10, 30, 0, tzinfo=timezone.utc),
    )


def make_request(**batch_options) -> BatchRequest:
    return BatchRequest(
        payer=PayerConfig(name="Acme", account="BE68539007547034", country="BE"),
        batch_options=BatchOptions(**batch_options),
        authorization=f"Bearer {API_KEY}",
    )


@pytest.fixture
def store(make_candidate) -> FakeRefundStore:
    return FakeRefundStore([make_candidate(1), make_candidate(2)])


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger({"CARD0001": Decimal("25.00"), "CARD0002": Decimal("12.50")})


def test_full_run_generates_and_marks(store, ledger):
    outcome = make_pipeline(store, ledger).run(make_request())

    assert outcome.document.transaction_count == 2
    assert outcome.document.total_amount == Decimal("33.50")
    assert outcome.completion.reconciled is True
    assert store.exported == {1, 2}
    assert outcome.states == [
        PipelineState.RECEIVED,
        PipelineState.AUTHENTICATED,
        PipelineState.CANDIDATES_FETCHED,
        PipelineState.FILTERED,
        PipelineState.GENERATED,
        PipelineState.MARKED,
        PipelineState.RESPONDED,
    ]


def test_dry_run_has_no_side_effects(store, ledger):
    outcome = make_pipeline(store, ledger).run(make_request(dry_run=True))

    assert outcome.document is None
    assert outcome.dry_run.transaction_count == 2
    assert store.exported == set()
    assert PipelineState.DRY_RUN_REPORTED in outcome.states


def test_second_run_finds_nothing(store, ledger):
    """Test exported refunds are not exported twice"""
    pipeline = make_pipeline(store, ledger)
    pipeline.run(make_request())

    with pytest.raises(PipelineError) as exc_info:
        pipeline.run(make_request())
    assert exc_info.value.code == ErrorCode.NO_REFUNDS_AVAILABLE
    assert exc_info.value.cause.reason == NoRefundsAvailableError.NONE_AVAILABLE


def test_bad_credentials_stop_at_received(store, ledger):
    request = make_request()
    request.authorization = "Bearer nope"

    with pytest.raises(PipelineError) as exc_info:
        make_pipeline(store, ledger).run(request)
    assert exc_info.value.code == ErrorCode.UNAUTHORIZED
    assert exc_info.value.stage == PipelineState.RECEIVED
    assert store.list_calls == 0


def test_bad_payer_config_fails_before_reading_candidates(store, ledger):
    request = make_request()
    request.payer = PayerConfig(name="Acme", account="BE00000000000000", country="BE")

    with pytest.raises(PipelineError) as exc_info:
        make_pipeline(store, ledger).run(request)
    assert exc_info.value.code == ErrorCode.CONFIGURATION_ERROR
    assert exc_info.value.stage == PipelineState.AUTHENTICATED
    assert store.list_calls == 0


def test_ledger_outage_is_refund_data_error(store):
    with pytest.raises(PipelineError) as exc_info:
        make_pipeline(store, FakeLedger({}, fail=True)).run(make_request())
    assert exc_info.value.code == ErrorCode.REFUND_DATA_ERROR
    assert exc_info.value.cause.upstream_status == 502
    assert store.exported == set()


def test_cap_marks_only_exported_refunds(store, ledger):
    """Test max_candidates limits both the document and the flags set"""
    outcome = make_pipeline(store, ledger).run(make_request(max_candidates=1))

    assert outcome.document.refund_ids == [1]
    assert store.exported == {1}


def test_duplicate_card_excluded_unless_warnings_included(make_candidate):
    store = FakeRefundStore([make_candidate(1, card_id="SHARED"), make_candidate(2, card_id="SHARED")])
    ledger = FakeLedger({"SHARED": Decimal("10.00")})
    pipeline = make_pipeline(store, ledger)

    assert pipeline.run(make_request(dry_run=True)).dry_run.transaction_count == 1
    assert pipeline.run(make_request(dry_run=True, include_warnings=True)).dry_run.transaction_count == 2


def test_preview_does_not_mark(store, ledger):
    result = make_pipeline(store, ledger).preview(authorization=f"Bearer {API_KEY}")

    assert len(result.valid_refunds) == 2
    assert store.exported == set()


def test_transition_table_enforced():
    run = PipelineRun()
    with pytest.raises(InvalidTransitionError):
        run.advance(PipelineState.GENERATED)

    run.fail()
    assert run.state == PipelineState.ERRORED
    with pytest.raises(InvalidTransitionError):
        run.advance(PipelineState.AUTHENTICATED)
