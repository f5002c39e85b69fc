"""Refund export endpoints: POST /v1/refunds/process, GET /v1/refunds/candidates"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import Response

from cashless_refunds.api.dependencies import get_pipeline, get_request_id
from cashless_refunds.api.errors import error_response, status_for
from cashless_refunds.api.v1.schemas import (
    CandidatesData,
    CandidatesResponse,
    DryRunResponse,
    EnrichmentSummarySchema,
    ProcessingSummary,
    ProcessRefundsRequest,
    RefundPreview,
    ValidationIssueSchema,
)
from cashless_refunds.config import settings
from cashless_refunds.domain.exceptions import ErrorCode
from cashless_refunds.domain.pipeline import BatchRequest, PipelineError, RefundBatchPipeline
from cashless_refunds.domain.sanitizer import format_amount
from cashless_refunds.infrastructure.observability.logging import log_batch_outcome
from cashless_refunds.infrastructure.observability.metrics import (
    reconciliation_warning_counter,
    record_batch,
    record_validation_issues,
)

router = APIRouter()


@router.post("/refunds/process")
def process_refunds(
    request_body: ProcessRefundsRequest,
    request: Request,
    authorization: Optional[str] = Header(None),
    apikey: Optional[str] = Header(None),
    pipeline: RefundBatchPipeline = Depends(get_pipeline),
):
    """
    Export pending refunds as a credit-transfer initiation file.

    Flow:
    1. Authenticate the operator and validate payer configuration
    2. Fetch unexported requests and recompute amounts from card balances
    3. Apply batch options (cap, warning filter, dry run)
    4. Generate the payment document
    5. Flag exported requests and return the file
    """
    request_id = get_request_id(request)

    batch_request = BatchRequest(
        payer=request_body.payer_config.to_domain(),
        document_options=request_body.document_options.to_domain(settings.export_file_prefix),
        batch_options=request_body.batch_options.to_domain(),
        authorization=authorization,
        apikey=apikey,
    )

    try:
        outcome = pipeline.run(batch_request)

    except PipelineError as e:
        outcome_label = "no_refunds" if e.code == ErrorCode.NO_REFUNDS_AVAILABLE else "failed"
        record_batch(outcome_label)
        log_batch_outcome(outcome_label, 0, "0.00", 0, 0.0, error_code=e.code.value)
        logging.warning(f"Refund batch failed: {e.message}", extra={"request_id": request_id})
        return error_response(status_for(e.code, e.cause), e.code, e.message, request_id, e.details)

    except Exception as e:
        record_batch("failed")
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id}, exc_info=True)
        return error_response(500, ErrorCode.SERVER_ERROR, "Internal server error", request_id)

    record_validation_issues(outcome.enrichment.validation_errors)
    validation_errors = len(outcome.enrichment.validation_errors)

    if outcome.dry_run is not None:
        summary = outcome.dry_run
        record_batch("dry_run")
        log_batch_outcome(
            "dry_run",
            summary.transaction_count,
            format_amount(summary.total_amount),
            validation_errors,
            summary.total_time_ms,
            message_id=summary.message_id,
        )
        return DryRunResponse(
            message_id=summary.message_id,
            transaction_count=summary.transaction_count,
            total_amount=float(summary.total_amount),
            processing_summary=ProcessingSummary(
                refunds_processed=summary.refunds_processed,
                validation_errors=summary.validation_errors,
                generation_time_ms=summary.generation_time_ms,
                total_time_ms=summary.total_time_ms,
            ),
            request_id=request_id,
        )

    document = outcome.document
    completion = outcome.completion
    if not completion.reconciled:
        reconciliation_warning_counter.inc(len(completion.already_exported) + len(completion.missing))

    record_batch("exported", document.transaction_count, document.total_amount)
    log_batch_outcome(
        "exported",
        document.transaction_count,
        format_amount(document.total_amount),
        validation_errors,
        outcome.total_time_ms,
        message_id=document.message_id,
    )

    filename = (
        f"{settings.export_file_prefix}_Refunds_{document.message_id}_"
        f"{document.created_at.strftime('%Y%m%d_%H%M%S')}.xml"
    )
    return Response(
        content=document.body,
        media_type="application/xml",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Message-ID": document.message_id,
            "X-Transaction-Count": str(document.transaction_count),
            "X-Total-Amount": format_amount(document.total_amount),
            "X-Processing-Time": f"{outcome.total_time_ms:.0f}ms",
            "X-Request-ID": request_id,
            "X-Export-Reconciliation": "ok" if completion.reconciled else "manual-check-required",
        },
    )


@router.get("/refunds/candidates", response_model=CandidatesResponse)
def list_candidates(
    request: Request,
    authorization: Optional[str] = Header(None),
    apikey: Optional[str] = Header(None),
    pipeline: RefundBatchPipeline = Depends(get_pipeline),
):
    """Preview enrichment of pending refunds without generating or flagging anything"""
    request_id = get_request_id(request)

    try:
        result = pipeline.preview(authorization, apikey)
    except PipelineError as e:
        logging.warning(f"Candidate preview failed: {e.message}", extra={"request_id": request_id})
        return error_response(status_for(e.code, e.cause), e.code, e.message, request_id, e.details)

    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id}, exc_info=True)
        return error_response(500, ErrorCode.SERVER_ERROR, "Internal server error", request_id)

    return CandidatesResponse(
        data=CandidatesData(
            valid_refunds=[
                RefundPreview(
                    id=r.id,
                    first_name=r.first_name,
                    last_name=r.last_name,
                    account=r.account,
                    email=r.email,
                    card_id=r.card_id,
                    net_amount=float(r.net_amount),
                    validation_status=r.validation_status.value,
                    validation_notes=r.validation_notes,
                )
                for r in result.valid_refunds
            ],
            validation_errors=[
                ValidationIssueSchema(
                    refund_id=issue.refund_id,
                    error_type=issue.error_type.value,
                    error_message=issue.error_message,
                    refund_data=issue.refund_data,
                )
                for issue in result.validation_errors
            ],
            summary=EnrichmentSummarySchema(
                total_refunds=result.summary.total_refunds,
                valid_refunds=result.summary.valid_refunds,
                error_count=result.summary.error_count,
                total_amount=float(result.summary.total_amount),
                processing_time_ms=result.summary.processing_time_ms,
            ),
        ),
        request_id=request_id,
    )
