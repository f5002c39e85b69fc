"""Request-scoped refund batch pipeline with an explicit stage table"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Set

from cashless_refunds.domain.authentication import OperatorAuthenticator
from cashless_refunds.domain.batch_policy import apply_batch_policy, summarize_dry_run
from cashless_refunds.domain.completion import CompletionMarker, StateStore
from cashless_refunds.domain.document import PaymentDocumentGenerator
from cashless_refunds.domain.enrichment import CandidateEnrichmentService, LedgerStore
from cashless_refunds.domain.exceptions import (
    DocumentGenerationError,
    DomainException,
    ErrorCode,
    InvalidTransitionError,
    NoRefundsAvailableError,
)
from cashless_refunds.domain.models import (
    BatchOptions,
    BatchSelection,
    CompletionReport,
    DocumentOptions,
    DryRunSummary,
    EnrichmentResult,
    GeneratedDocument,
    PayerConfig,
    RawCandidate,
)

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    RECEIVED = "received"
    AUTHENTICATED = "authenticated"
    CANDIDATES_FETCHED = "candidates_fetched"
    FILTERED = "filtered"
    DRY_RUN_REPORTED = "dry_run_reported"
    GENERATED = "generated"
    MARKED = "marked"
    RESPONDED = "responded"
    ERRORED = "errored"


TERMINAL_STATES = {PipelineState.RESPONDED, PipelineState.ERRORED}

ALLOWED_TRANSITIONS: Dict[PipelineState, Set[PipelineState]] = {
    PipelineState.RECEIVED: {PipelineState.AUTHENTICATED, PipelineState.ERRORED},
    PipelineState.AUTHENTICATED: {PipelineState.CANDIDATES_FETCHED, PipelineState.ERRORED},
    PipelineState.CANDIDATES_FETCHED: {PipelineState.FILTERED, PipelineState.ERRORED},
    PipelineState.FILTERED: {PipelineState.DRY_RUN_REPORTED, PipelineState.GENERATED, PipelineState.ERRORED},
    PipelineState.DRY_RUN_REPORTED: {PipelineState.RESPONDED, PipelineState.ERRORED},
    PipelineState.GENERATED: {PipelineState.MARKED, PipelineState.ERRORED},
    PipelineState.MARKED: {PipelineState.RESPONDED, PipelineState.ERRORED},
    PipelineState.RESPONDED: set(),
    PipelineState.ERRORED: set(),
}


class CandidateSource(Protocol):
    def list_unexported(self) -> List[RawCandidate]:
        ...


class PipelineError(Exception):
    """A stage failed; carries the stage reached and the caller-facing error"""

    def __init__(
        self,
        stage: PipelineState,
        code: ErrorCode,
        message: str,
        details=None,
        cause: Optional[DomainException] = None,
    ):
        super().__init__(message)
        self.stage = stage
        self.code = code
        self.message = message
        self.details = details
        self.cause = cause


@dataclass
class PipelineRun:
    """Tracks the stages one request has passed through"""

    state: PipelineState = PipelineState.RECEIVED
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.RECEIVED])

    def advance(self, target: PipelineState) -> None:
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"Cannot move from {self.state.value} to {target.value}")
        self.state = target
        self.history.append(target)

    def fail(self) -> None:
        if self.state not in TERMINAL_STATES:
            self.advance(PipelineState.ERRORED)


@dataclass
class BatchRequest:
    payer: PayerConfig
    document_options: DocumentOptions = field(default_factory=DocumentOptions)
    batch_options: BatchOptions = field(default_factory=BatchOptions)
    authorization: Optional[str] = None
    apikey: Optional[str] = None


@dataclass
class BatchOutcome:
    """Everything the caller needs to build its response"""

    enrichment: EnrichmentResult
    selection: BatchSelection
    states: List[PipelineState]
    total_time_ms: float
    dry_run: Optional[DryRunSummary] = None
    document: Optional[GeneratedDocument] = None
    completion: Optional[CompletionReport] = None
    warnings: List[str] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RefundBatchPipeline:
    """
    Runs one refund export request end to end.

    Flow:
    1. Authenticate the operator
    2. Validate payer configuration and document options
    3. Fetch unexported candidates and enrich them from the ledger
    4. Apply batch options
    5. Report (dry run) or generate the document and flag its refunds
    """

    def __init__(
        self,
        candidate_source: CandidateSource,
        ledger: LedgerStore,
        state_store: StateStore,
        authenticator: OperatorAuthenticator,
        processing_fee: Decimal,
        minimum_refund: Decimal,
        maximum_refund: Decimal,
        default_bank_code: str,
        remittance_information: str,
        payer_countries: List[str],
        account_countries: Optional[List[str]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.candidate_source = candidate_source
        self.ledger = ledger
        self.state_store = state_store
        self.authenticator = authenticator
        self.processing_fee = processing_fee
        self.minimum_refund = minimum_refund
        self.maximum_refund = maximum_refund
        self.default_bank_code = default_bank_code
        self.remittance_information = remittance_information
        self.payer_countries = payer_countries
        self.account_countries = account_countries
        self.clock = clock

    def _enrichment_service(self) -> CandidateEnrichmentService:
        return CandidateEnrichmentService(
            ledger=self.ledger,
            processing_fee=self.processing_fee,
            minimum_refund=self.minimum_refund,
            allowed_countries=self.account_countries,
        )

    def _document_generator(self, request: BatchRequest) -> PaymentDocumentGenerator:
        return PaymentDocumentGenerator(
            payer=request.payer,
            options=request.document_options,
            remittance_information=self.remittance_information,
            default_bank_code=self.default_bank_code,
            payer_countries=self.payer_countries,
            account_countries=self.account_countries,
            minimum_amount=self.minimum_refund,
            maximum_amount=self.maximum_refund,
            clock=self.clock,
        )

    def preview(self, authorization: Optional[str] = None, apikey: Optional[str] = None) -> EnrichmentResult:
        """Enrich current candidates without generating or flagging anything"""
        run = PipelineRun()
        try:
            self.authenticator.authenticate(authorization, apikey)
            run.advance(PipelineState.AUTHENTICATED)
            result = self._enrichment_service().enrich(self.candidate_source.list_unexported())
            run.advance(PipelineState.CANDIDATES_FETCHED)
            return result
        except DomainException as e:
            stage = run.state
            run.fail()
            raise PipelineError(stage, e.code, e.message, e.details, cause=e) from e

    def run(self, request: BatchRequest) -> BatchOutcome:
        start_time = time.perf_counter()
        run = PipelineRun()

        try:
            self.authenticator.authenticate(request.authorization, request.apikey)
            run.advance(PipelineState.AUTHENTICATED)

            # Bad payer config fails before any candidate is read
            generator = self._document_generator(request)

            candidates = self.candidate_source.list_unexported()
            enrichment = self._enrichment_service().enrich(candidates)
            run.advance(PipelineState.CANDIDATES_FETCHED)

            if not enrichment.valid_refunds:
                raise NoRefundsAvailableError(
                    "No valid refunds available for processing",
                    reason=NoRefundsAvailableError.NONE_AVAILABLE,
                    details={
                        "total_candidates": len(candidates),
                        "validation_errors": len(enrichment.validation_errors),
                    },
                )

            selection = apply_batch_policy(enrichment.valid_refunds, request.batch_options)
            run.advance(PipelineState.FILTERED)

            if request.batch_options.dry_run:
                run.advance(PipelineState.DRY_RUN_REPORTED)
                total_time_ms = (time.perf_counter() - start_time) * 1000
                summary = summarize_dry_run(selection, len(enrichment.validation_errors), total_time_ms)
                run.advance(PipelineState.RESPONDED)
                return BatchOutcome(
                    enrichment=enrichment,
                    selection=selection,
                    states=list(run.history),
                    total_time_ms=total_time_ms,
                    dry_run=summary,
                )

            result = generator.generate(selection.refunds)
            if not result.success:
                raise DocumentGenerationError(
                    "Payment document generation failed",
                    details={"errors": result.errors},
                )
            run.advance(PipelineState.GENERATED)

            completion = CompletionMarker(self.state_store).mark(result.document.refund_ids)
            run.advance(PipelineState.MARKED)

            total_time_ms = (time.perf_counter() - start_time) * 1000
            run.advance(PipelineState.RESPONDED)
            return BatchOutcome(
                enrichment=enrichment,
                selection=selection,
                states=list(run.history),
                total_time_ms=total_time_ms,
                document=result.document,
                completion=completion,
                warnings=result.warnings,
            )

        except DomainException as e:
            stage = run.state
            run.fail()
            logger.warning(
                f"Refund batch stopped at {stage.value}: {e.message}",
                extra={"step": stage.value, "error_code": e.code.value},
            )
            raise PipelineError(stage, e.code, e.message, e.details, cause=e) from e
