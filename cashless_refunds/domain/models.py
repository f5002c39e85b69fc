"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


class ValidationStatus(str, Enum):
    VALID = "valid"
    WARNING = "warning"
    ERROR = "error"


class IssueType(str, Enum):
    MISSING_CARD = "missing_card"
    INVALID_DATA = "invalid_data"
    BALANCE_MISMATCH = "balance_mismatch"
    DATA_INTEGRITY = "data_integrity"


class InstructionPriority(str, Enum):
    NORMAL = "NORM"
    HIGH = "HIGH"


class ServiceLevel(str, Enum):
    SEPA = "SEPA"
    PRIORITY = "PRPT"


class CategoryPurpose(str, Enum):
    SUPPLIER = "SUPP"
    SALARY = "SALA"
    INTRA_COMPANY = "INTC"
    TREASURY = "TREA"
    TAXES = "TAXS"


class ChargeBearer(str, Enum):
    SERVICE_LEVEL = "SLEV"
    SHARED = "SHAR"


@dataclass
class RawCandidate:
    """Reimbursement request as stored upstream, before any validation"""

    id: int
    created_at: datetime
    first_name: Optional[str]
    last_name: Optional[str]
    account: Optional[str]
    email: Optional[str]
    card_id: Optional[str]
    exported: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "account": self.account,
            "email": self.email,
            "card_id": self.card_id,
            "exported": self.exported,
        }


@dataclass
class ValidatedRefund:
    """Candidate accepted by enrichment, carrying the recomputed refund amount"""

    id: int
    created_at: datetime
    first_name: str
    last_name: str
    account: str
    email: str
    card_id: str
    net_amount: Decimal
    validation_status: ValidationStatus = ValidationStatus.VALID
    validation_notes: List[str] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass
class ValidationIssue:
    """Why a candidate was kept out of the export"""

    refund_id: int
    error_type: IssueType
    error_message: str
    refund_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EnrichmentSummary:
    total_refunds: int
    valid_refunds: int
    error_count: int
    total_amount: Decimal
    processing_time_ms: float


@dataclass
class EnrichmentResult:
    """Output of the enrichment stage"""

    valid_refunds: List[ValidatedRefund]
    validation_errors: List[ValidationIssue]
    summary: EnrichmentSummary


@dataclass
class PayerConfig:
    """Debtor side of the credit transfer (the festival organisation)"""

    name: str
    account: str
    country: str
    bank_code: Optional[str] = None
    address_lines: List[str] = field(default_factory=list)
    organization_id: Optional[str] = None
    organization_issuer: Optional[str] = None


@dataclass
class BatchOptions:
    max_candidates: Optional[int] = None
    include_warnings: bool = False
    dry_run: bool = False


@dataclass
class DocumentOptions:
    message_id_prefix: str = "CBC"
    payment_block_id_prefix: str = "PMT"
    instruction_priority: InstructionPriority = InstructionPriority.NORMAL
    service_level: ServiceLevel = ServiceLevel.SEPA
    category_purpose: CategoryPurpose = CategoryPurpose.SUPPLIER
    charge_bearer: ChargeBearer = ChargeBearer.SERVICE_LEVEL
    batch_booking: bool = True
    requested_execution_date: Optional[date] = None


@dataclass
class BatchSelection:
    """Refunds retained by the batch policy"""

    refunds: List[ValidatedRefund]
    original_count: int
    truncated_count: int
    warnings_excluded: int

    @property
    def total_amount(self) -> Decimal:
        return sum((r.net_amount for r in self.refunds), Decimal("0.00"))


@dataclass
class DryRunSummary:
    transaction_count: int
    total_amount: Decimal
    refunds_processed: int
    validation_errors: int
    generation_time_ms: float
    total_time_ms: float
    message_id: str = "DRY_RUN"


@dataclass
class GeneratedDocument:
    """Serialized payment-initiation document plus its identifying metadata"""

    message_id: str
    payment_block_id: str
    created_at: datetime
    execution_date: date
    transaction_count: int
    total_amount: Decimal
    body: str
    refund_ids: List[int] = field(default_factory=list)


@dataclass
class GenerationResult:
    success: bool
    document: Optional[GeneratedDocument] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    generation_time_ms: float = 0.0


@dataclass
class CompletionReport:
    """Outcome of flipping export flags after a document was produced"""

    requested: List[int]
    updated: List[int]
    already_exported: List[int] = field(default_factory=list)
    missing: List[int] = field(default_factory=list)

    @property
    def reconciled(self) -> bool:
        return not self.already_exported and not self.missing
