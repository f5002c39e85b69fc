"""pain.001.001.03 credit-transfer document generation for refund batches"""

import logging
import re
import secrets
import time
import xml.etree.ElementTree as ET
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Tuple

from cashless_refunds.domain.exceptions import AmountValidationError, ConfigurationError
from cashless_refunds.domain.iban import is_valid_account, normalize_account
from cashless_refunds.domain.models import (
    DocumentOptions,
    GeneratedDocument,
    GenerationResult,
    PayerConfig,
    ValidatedRefund,
    ValidationStatus,
)
from cashless_refunds.domain.sanitizer import (
    CENT,
    DEFAULT_MAXIMUM_AMOUNT,
    MAX_TEXT_LENGTH,
    contains_only_allowed,
    format_amount,
    normalize_amount,
    sanitize_text,
)

logger = logging.getLogger(__name__)

NAMESPACE = "urn:iso:std:iso:20022:tech:xsd:pain.001.001.03"
XSI_NAMESPACE = "http://www.w3.org/2001/XMLSchema-instance"
CURRENCY = "EUR"
PAYMENT_METHOD = "TRF"
DEFAULT_BANK_CODE = "GKCCBEBB"
DEFAULT_ORGANIZATION_ISSUER = "KBO-BCE"
DEFAULT_REMITTANCE_INFORMATION = "Remboursement Les Aperos du chateau"

MAX_ADDRESS_LINES = 2
# MsgId and PmtInfId are Max35Text; the generated suffixes take 21 and 15 chars
MAX_ID_PREFIX_LENGTH = 14

BIC_PATTERN = re.compile(r"^[A-Z]{4}[A-Z]{2}[A-Z0-9]{2}([A-Z0-9]{3})?$")
ID_PREFIX_PATTERN = re.compile(r"^[A-Za-z0-9]*$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _sub(parent: ET.Element, tag: str, text: Optional[str] = None, **attrib: str) -> ET.Element:
    element = ET.SubElement(parent, tag, attrib)
    if text is not None:
        element.text = text
    return element


def instruction_id(refund_id: int, created_at: datetime) -> str:
    return f"TXN{refund_id:06d}_{created_at.strftime('%Y%m%d')}"


def end_to_end_id(refund_id: int) -> str:
    return f"REFUND_{refund_id:06d}"


class PaymentDocumentGenerator:
    """
    Builds one credit-transfer initiation document per refund batch.

    The payer configuration is validated on construction so a bad
    configuration rejects the batch before any refund is looked at.
    Every refund is validated again in generate(), and a document is only
    returned when all of them pass.
    """

    def __init__(
        self,
        payer: PayerConfig,
        options: Optional[DocumentOptions] = None,
        remittance_information: str = DEFAULT_REMITTANCE_INFORMATION,
        default_bank_code: str = DEFAULT_BANK_CODE,
        payer_countries: Iterable[str] = ("BE",),
        account_countries: Optional[Iterable[str]] = None,
        minimum_amount: Decimal = CENT,
        maximum_amount: Decimal = DEFAULT_MAXIMUM_AMOUNT,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.payer = payer
        self.options = options or DocumentOptions()
        self.remittance_information = sanitize_text(remittance_information)
        self.default_bank_code = default_bank_code
        self.payer_countries = [c.upper() for c in payer_countries]
        self.account_countries = list(account_countries) if account_countries is not None else None
        self.minimum_amount = minimum_amount
        self.maximum_amount = maximum_amount
        self.clock = clock

        self._validate_payer()
        self._validate_options()

    def _validate_payer(self) -> None:
        payer = self.payer

        if not payer.name or not sanitize_text(payer.name):
            raise ConfigurationError("Payer name is required")
        if not contains_only_allowed(payer.name):
            raise ConfigurationError("Payer name contains invalid characters")
        if len(payer.name.strip()) > MAX_TEXT_LENGTH:
            raise ConfigurationError(f"Payer name exceeds maximum length ({MAX_TEXT_LENGTH} characters)")

        if not payer.account:
            raise ConfigurationError("Payer account number is required")
        if not is_valid_account(payer.account, self.account_countries):
            raise ConfigurationError(f"Invalid payer IBAN format: {payer.account}")

        if not payer.country:
            raise ConfigurationError("Payer country is required")
        if payer.country.upper() not in self.payer_countries:
            raise ConfigurationError(
                f"Unsupported payer country: {payer.country}",
                details={"supported_countries": self.payer_countries},
            )

        if payer.bank_code and not BIC_PATTERN.match(payer.bank_code.strip().upper()):
            raise ConfigurationError(f"Invalid payer bank identifier code: {payer.bank_code}")

        if len([line for line in payer.address_lines if line and line.strip()]) > MAX_ADDRESS_LINES:
            raise ConfigurationError(f"Payer address accepts at most {MAX_ADDRESS_LINES} lines")

    def _validate_options(self) -> None:
        for label, prefix in (
            ("message_id_prefix", self.options.message_id_prefix),
            ("payment_block_id_prefix", self.options.payment_block_id_prefix),
        ):
            if not ID_PREFIX_PATTERN.match(prefix) or len(prefix) > MAX_ID_PREFIX_LENGTH:
                raise ConfigurationError(
                    f"{label} must be at most {MAX_ID_PREFIX_LENGTH} letters or digits, got {prefix!r}"
                )

    def generate(self, refunds: List[ValidatedRefund]) -> GenerationResult:
        """
        Produce the serialized document for ``refunds``.

        Returns:
            GenerationResult with the document on success, or the full list
            of re-validation errors and no document on failure
        """
        start_time = time.perf_counter()
        logger.info("Starting document generation", extra={"step": "generation", "refund_count": len(refunds)})

        if not refunds:
            return GenerationResult(
                success=False,
                errors=["No refund data provided"],
                generation_time_ms=(time.perf_counter() - start_time) * 1000,
            )

        lines, errors, warnings = self._revalidate(refunds)
        if errors:
            logger.warning(
                "Refunds failed re-validation, no document produced",
                extra={"step": "generation", "error_count": len(errors)},
            )
            return GenerationResult(
                success=False,
                errors=errors,
                warnings=warnings,
                generation_time_ms=(time.perf_counter() - start_time) * 1000,
            )

        created_at = self.clock()
        compact = created_at.strftime("%Y%m%d%H%M%S")
        message_id = f"{self.options.message_id_prefix}{compact}_{secrets.token_hex(3).upper()}"
        payment_block_id = f"{self.options.payment_block_id_prefix}_{compact}"
        execution_date = self.options.requested_execution_date or (created_at.date() + timedelta(days=1))

        # Count and control sum come from the same list the transactions are emitted from
        transaction_count = len(lines)
        total_amount = sum((amount for _, _, amount in lines), Decimal("0.00"))

        root = ET.Element("Document", {"xmlns": NAMESPACE, "xmlns:xsi": XSI_NAMESPACE})
        initiation = _sub(root, "CstmrCdtTrfInitn")
        self._build_group_header(initiation, message_id, created_at, transaction_count, total_amount)
        self._build_payment_block(
            initiation, payment_block_id, execution_date, created_at, transaction_count, total_amount, lines
        )

        ET.indent(root, space="    ")
        body = '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding="unicode")

        document = GeneratedDocument(
            message_id=message_id,
            payment_block_id=payment_block_id,
            created_at=created_at,
            execution_date=execution_date,
            transaction_count=transaction_count,
            total_amount=total_amount,
            body=body,
            refund_ids=[refund.id for refund, _, _ in lines],
        )
        generation_time_ms = (time.perf_counter() - start_time) * 1000

        logger.info(
            "Document generation completed",
            extra={
                "step": "generation",
                "message_id": message_id,
                "transaction_count": transaction_count,
                "total_amount": format_amount(total_amount),
                "duration_ms": generation_time_ms,
            },
        )

        return GenerationResult(
            success=True,
            document=document,
            warnings=warnings,
            generation_time_ms=generation_time_ms,
        )

    def _revalidate(
        self, refunds: List[ValidatedRefund]
    ) -> Tuple[List[Tuple[ValidatedRefund, str, Decimal]], List[str], List[str]]:
        """Check every refund again; returns (lines, errors, warnings)"""
        lines: List[Tuple[ValidatedRefund, str, Decimal]] = []
        errors: List[str] = []
        warnings: List[str] = []

        for refund in refunds:
            refund_errors: List[str] = []

            if not refund.first_name or not refund.first_name.strip():
                refund_errors.append("First name is required")
            if not refund.last_name or not refund.last_name.strip():
                refund_errors.append("Last name is required")

            if not refund.account or not refund.account.strip():
                refund_errors.append("Account (IBAN) is required")
            elif not is_valid_account(refund.account, self.account_countries):
                refund_errors.append("Invalid IBAN format")

            amount = None
            try:
                amount = normalize_amount(refund.net_amount, minimum=self.minimum_amount, maximum=self.maximum_amount)
            except AmountValidationError as e:
                refund_errors.append(e.message)

            creditor_name = sanitize_text(f"{refund.first_name or ''} {refund.last_name or ''}")
            if not refund_errors and not creditor_name:
                refund_errors.append("Creditor name is empty after sanitization")

            if refund_errors:
                errors.extend(f"Refund {refund.id}: {message}" for message in refund_errors)
                continue

            if creditor_name != refund.full_name:
                warnings.append(f"Refund {refund.id}: creditor name sanitized to '{creditor_name}'")
            if refund.validation_status == ValidationStatus.WARNING:
                warnings.append(f"Refund {refund.id}: {', '.join(refund.validation_notes)}")

            lines.append((refund, creditor_name, amount))

        return lines, errors, warnings

    def _build_party_id(self, parent: ET.Element) -> None:
        if not self.payer.organization_id:
            return
        other = _sub(_sub(_sub(parent, "Id"), "OrgId"), "Othr")
        _sub(other, "Id", sanitize_text(self.payer.organization_id))
        _sub(other, "Issr", sanitize_text(self.payer.organization_issuer or DEFAULT_ORGANIZATION_ISSUER))

    def _build_group_header(
        self,
        parent: ET.Element,
        message_id: str,
        created_at: datetime,
        transaction_count: int,
        total_amount: Decimal,
    ) -> None:
        header = _sub(parent, "GrpHdr")
        _sub(header, "MsgId", message_id)
        _sub(header, "CreDtTm", created_at.strftime("%Y-%m-%dT%H:%M:%S"))
        _sub(header, "NbOfTxs", str(transaction_count))
        _sub(header, "CtrlSum", format_amount(total_amount))
        initiating_party = _sub(header, "InitgPty")
        _sub(initiating_party, "Nm", sanitize_text(self.payer.name))
        self._build_party_id(initiating_party)

    def _build_payment_block(
        self,
        parent: ET.Element,
        payment_block_id: str,
        execution_date,
        created_at: datetime,
        transaction_count: int,
        total_amount: Decimal,
        lines: List[Tuple[ValidatedRefund, str, Decimal]],
    ) -> None:
        options = self.options
        block = _sub(parent, "PmtInf")
        _sub(block, "PmtInfId", payment_block_id)
        _sub(block, "PmtMtd", PAYMENT_METHOD)
        _sub(block, "BtchBookg", "true" if options.batch_booking else "false")
        _sub(block, "NbOfTxs", str(transaction_count))
        _sub(block, "CtrlSum", format_amount(total_amount))

        payment_type = _sub(block, "PmtTpInf")
        _sub(payment_type, "InstrPrty", options.instruction_priority.value)
        _sub(_sub(payment_type, "SvcLvl"), "Cd", options.service_level.value)
        _sub(_sub(payment_type, "CtgyPurp"), "Cd", options.category_purpose.value)

        _sub(block, "ReqdExctnDt", execution_date.isoformat())

        debtor = _sub(block, "Dbtr")
        _sub(debtor, "Nm", sanitize_text(self.payer.name))
        address_lines = [line for line in self.payer.address_lines if line and line.strip()]
        if address_lines:
            address = _sub(debtor, "PstlAdr")
            _sub(address, "Ctry", self.payer.country.upper())
            for line in address_lines:
                _sub(address, "AdrLine", sanitize_text(line))
        self._build_party_id(debtor)

        debtor_account = _sub(block, "DbtrAcct")
        _sub(_sub(debtor_account, "Id"), "IBAN", normalize_account(self.payer.account))
        _sub(debtor_account, "Ccy", CURRENCY)

        bank_code = (self.payer.bank_code or self.default_bank_code).strip().upper()
        _sub(_sub(_sub(block, "DbtrAgt"), "FinInstnId"), "BIC", bank_code)
        _sub(block, "ChrgBr", options.charge_bearer.value)

        for refund, creditor_name, amount in lines:
            self._build_transaction(block, refund, creditor_name, amount, created_at)

    def _build_transaction(
        self,
        parent: ET.Element,
        refund: ValidatedRefund,
        creditor_name: str,
        amount: Decimal,
        created_at: datetime,
    ) -> None:
        transaction = _sub(parent, "CdtTrfTxInf")

        payment_id = _sub(transaction, "PmtId")
        _sub(payment_id, "InstrId", instruction_id(refund.id, created_at))
        _sub(payment_id, "EndToEndId", end_to_end_id(refund.id))

        _sub(_sub(transaction, "Amt"), "InstdAmt", format_amount(amount), Ccy=CURRENCY)
        _sub(_sub(transaction, "Cdtr"), "Nm", creditor_name)
        _sub(_sub(_sub(transaction, "CdtrAcct"), "Id"), "IBAN", normalize_account(refund.account))
        _sub(_sub(transaction, "RmtInf"), "Ustrd", self.remittance_information)
