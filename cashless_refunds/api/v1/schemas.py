"""Pydantic schemas for API request/response validation"""

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from cashless_refunds.domain.models import (
    BatchOptions,
    CategoryPurpose,
    ChargeBearer,
    DocumentOptions,
    InstructionPriority,
    PayerConfig,
    ServiceLevel,
)


class PayerConfigSchema(BaseModel):
    """Debtor configuration; completeness is checked by the document generator"""

    name: Optional[str] = None
    account: Optional[str] = Field(None, description="Payer IBAN")
    country: Optional[str] = Field(None, description="ISO 3166 alpha-2 country code")
    bank_code: Optional[str] = Field(None, description="Payer BIC, defaults to the configured bank")
    address_lines: List[str] = Field(default_factory=list)
    organization_id: Optional[str] = None
    organization_issuer: Optional[str] = None

    def to_domain(self) -> PayerConfig:
        return PayerConfig(
            name=self.name or "",
            account=self.account or "",
            country=self.country or "",
            bank_code=self.bank_code,
            address_lines=list(self.address_lines),
            organization_id=self.organization_id,
            organization_issuer=self.organization_issuer,
        )


class DocumentOptionsSchema(BaseModel):
    message_id_prefix: Optional[str] = None
    payment_block_id_prefix: str = "PMT"
    instruction_priority: InstructionPriority = InstructionPriority.NORMAL
    service_level: ServiceLevel = ServiceLevel.SEPA
    category_purpose: CategoryPurpose = CategoryPurpose.SUPPLIER
    charge_bearer: ChargeBearer = ChargeBearer.SERVICE_LEVEL
    batch_booking: bool = True
    requested_execution_date: Optional[date] = None

    def to_domain(self, default_prefix: str) -> DocumentOptions:
        return DocumentOptions(
            message_id_prefix=self.message_id_prefix if self.message_id_prefix is not None else default_prefix,
            payment_block_id_prefix=self.payment_block_id_prefix,
            instruction_priority=self.instruction_priority,
            service_level=self.service_level,
            category_purpose=self.category_purpose,
            charge_bearer=self.charge_bearer,
            batch_booking=self.batch_booking,
            requested_execution_date=self.requested_execution_date,
        )


class BatchOptionsSchema(BaseModel):
    max_candidates: Optional[int] = Field(None, gt=0, description="Cap on candidates considered")
    include_warnings: bool = False
    dry_run: bool = False

    def to_domain(self) -> BatchOptions:
        return BatchOptions(
            max_candidates=self.max_candidates,
            include_warnings=self.include_warnings,
            dry_run=self.dry_run,
        )


class ProcessRefundsRequest(BaseModel):
    """Request body for POST /v1/refunds/process"""

    payer_config: PayerConfigSchema = Field(default_factory=PayerConfigSchema)
    document_options: DocumentOptionsSchema = Field(default_factory=DocumentOptionsSchema)
    batch_options: BatchOptionsSchema = Field(default_factory=BatchOptionsSchema)


class ProcessingSummary(BaseModel):
    refunds_processed: int
    validation_errors: int
    generation_time_ms: float
    total_time_ms: float


class DryRunResponse(BaseModel):
    """Response for POST /v1/refunds/process with dry_run enabled"""

    success: bool = True
    message_id: str
    transaction_count: int
    total_amount: float
    processing_summary: ProcessingSummary
    request_id: str


class RefundPreview(BaseModel):
    id: int
    first_name: str
    last_name: str
    account: str
    email: str
    card_id: str
    net_amount: float
    validation_status: str
    validation_notes: List[str]


class ValidationIssueSchema(BaseModel):
    refund_id: int
    error_type: str
    error_message: str
    refund_data: Dict[str, Any]


class EnrichmentSummarySchema(BaseModel):
    total_refunds: int
    valid_refunds: int
    error_count: int
    total_amount: float
    processing_time_ms: float


class CandidatesData(BaseModel):
    valid_refunds: List[RefundPreview]
    validation_errors: List[ValidationIssueSchema]
    summary: EnrichmentSummarySchema


class CandidatesResponse(BaseModel):
    """Response for GET /v1/refunds/candidates"""

    success: bool = True
    data: CandidatesData
    request_id: str


class ErrorResponse(BaseModel):
    """Envelope for every failed request"""

    success: bool = False
    error: str
    error_code: str
    details: Optional[Any] = None
    request_id: str
