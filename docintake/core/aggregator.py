"""Consolidated report over several normalized documents.

`build_report` merges instances of the same document type, pulls the
subject's identity out of the documents and computes the per-type totals
shown in the financial summary.
"""

import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from .catalog import SchemaCatalog
from .dates import normalize_doc_date
from .exceptions import InvalidReportInputError
from .models import (
    AggregatedReport,
    Aggregation,
    AnnualReceiptsAggregation,
    BankAccountAggregation,
    IncomingDocument,
    NormalizedDocument,
    ReportMeta,
    SalarySlipAggregation,
)
from .normalizer import find_raw_doc_date
from .resolver import has_value, parse_amount, resolve_field

logger = logging.getLogger(__name__)

NATIONAL_ID = "cedula-identidad"
SALARY_SLIP = "liquidacion-sueldo"
ANNUAL_RECEIPTS = "boletas-anual"
BANK_ACCOUNT = "cuenta-bancaria"

MergedDocuments = Dict[str, Union[List[Dict[str, Any]], Dict[str, Any]]]


def parse_report_request(payload: Any) -> List[IncomingDocument]:
    """Validate a report request body.

    Accepts ``{"documents": [...]}`` or a bare list. Individual records that
    fail validation are skipped.

    Raises:
        InvalidReportInputError: If the body does not hold a list of documents
    """
    if isinstance(payload, dict):
        documents = payload.get("documents")
    elif isinstance(payload, list):
        documents = payload
    else:
        raise InvalidReportInputError("expected an object with a documents array", type(payload).__name__)

    if not isinstance(documents, list):
        raise InvalidReportInputError("documents must be an array", type(documents).__name__)

    incoming = []
    for index, item in enumerate(documents):
        document = _as_incoming(item)
        if document is None:
            logger.warning(f"[REPORT] Skipping malformed document record at index {index}")
            continue
        incoming.append(document)
    return incoming


def _as_incoming(item: Any) -> Optional[IncomingDocument]:
    if isinstance(item, IncomingDocument):
        return item
    if isinstance(item, NormalizedDocument):
        return IncomingDocument(doc_type_id=item.doc_type_id, doc_date=item.doc_date, data=item.data)
    if not isinstance(item, dict):
        return None
    try:
        return IncomingDocument.model_validate(item)
    except ValidationError:
        return None


def _entries(merged: Any) -> List[Dict[str, Any]]:
    if isinstance(merged, list):
        return merged
    if isinstance(merged, dict):
        return [merged]
    return []


def _stamp_doc_date(entry: Dict[str, Any], doc_type_id: str, doc_date: Optional[str], catalog: SchemaCatalog) -> Dict[str, Any]:
    stamped = dict(entry)
    if has_value(stamped.get("docdate"), non_empty=True):
        return stamped

    own_date = normalize_doc_date(find_raw_doc_date(stamped, doc_type_id, catalog), catalog.frequency_of(doc_type_id))
    resolved = own_date or doc_date
    if resolved:
        stamped["docdate"] = resolved
    return stamped


def _is_non_empty_record(entry: Dict[str, Any]) -> bool:
    return any(has_value(value, non_empty=True) for key, value in entry.items() if key != "docdate")


def merge_documents(documents: Sequence[IncomingDocument], catalog: SchemaCatalog) -> MergedDocuments:
    """Group documents by type: one record for one-off types, a list for repeating ones."""
    grouped: Dict[str, List[Dict[str, Any]]] = {}

    for document in documents:
        doc_type_id = document.doc_type_id
        if doc_type_id not in catalog:
            logger.debug(f"[REPORT] {doc_type_id} - No schema, skipping")
            continue

        doc_date = normalize_doc_date(document.doc_date, catalog.frequency_of(doc_type_id))
        raw_entries = document.data if isinstance(document.data, list) else [document.data]
        entries = grouped.setdefault(doc_type_id, [])
        for entry in raw_entries:
            if not isinstance(entry, dict):
                logger.warning(f"[REPORT] {doc_type_id} - Dropping non-object entry")
                continue
            entries.append(_stamp_doc_date(entry, doc_type_id, doc_date, catalog))

    merged: MergedDocuments = {}
    for doc_type_id, entries in grouped.items():
        if not entries:
            continue
        if catalog.is_repeatable(doc_type_id):
            merged[doc_type_id] = entries
        else:
            merged[doc_type_id] = next((e for e in entries if _is_non_empty_record(e)), entries[0])
    return merged


def _add_identity_value(target: Dict[str, None], value: Any) -> None:
    if value is None or isinstance(value, (bool, dict, list)):
        return
    text = str(value).strip()
    if text:
        target.setdefault(text, None)


def extract_identity(documents: MergedDocuments, catalog: SchemaCatalog) -> Dict[str, Any]:
    """Main ID and name from the ID card, plus every ID and name seen anywhere."""
    national_id = _entries(documents.get(NATIONAL_ID))
    record = national_id[0] if national_id else None

    main_id = resolve_field(record, NATIONAL_ID, "rut", catalog)
    name_parts = [
        resolve_field(record, NATIONAL_ID, "nombres", catalog),
        resolve_field(record, NATIONAL_ID, "apellidos", catalog),
    ]
    main_name = " ".join(str(part).strip() for part in name_parts if part and str(part).strip())

    all_ids: Dict[str, None] = {}
    all_names: Dict[str, None] = {}
    for doc_type_id, merged in documents.items():
        identity = catalog.identity_fields(doc_type_id)
        for entry in _entries(merged):
            for field_name in identity.id_fields:
                _add_identity_value(all_ids, entry.get(field_name))
            for field_name in identity.name_fields:
                _add_identity_value(all_names, entry.get(field_name))

    return {
        "main_id": str(main_id).strip() if main_id else "",
        "main_name": main_name,
        "all_ids": list(all_ids),
        "all_names": list(all_names),
    }


def _with_driving_value(entries: List[Dict[str, Any]], doc_type_id: str, field_name: str, catalog: SchemaCatalog) -> List[Dict[str, Any]]:
    return [
        entry for entry in entries
        if has_value(resolve_field(entry, doc_type_id, field_name, catalog, non_empty=True), non_empty=True)
    ]


def _total(entries: List[Dict[str, Any]], doc_type_id: str, field_name: str, catalog: SchemaCatalog) -> float:
    return sum(parse_amount(resolve_field(entry, doc_type_id, field_name, catalog, non_empty=True)) for entry in entries)


def _truthy_values(entries: List[Dict[str, Any]], doc_type_id: str, field_name: str, catalog: SchemaCatalog) -> List[Any]:
    values = (resolve_field(entry, doc_type_id, field_name, catalog) for entry in entries)
    return [value for value in values if value]


def aggregate_salary_slips(entries: List[Dict[str, Any]], catalog: SchemaCatalog) -> Optional[SalarySlipAggregation]:
    items = _with_driving_value(entries, SALARY_SLIP, "liquido_a_pagar", catalog)
    if not items:
        return None

    total_liquido = _total(items, SALARY_SLIP, "liquido_a_pagar", catalog)
    total_base_imponible = _total(items, SALARY_SLIP, "base_imponible", catalog)
    return SalarySlipAggregation(
        count=len(items),
        total_liquido=total_liquido,
        avg_liquido=total_liquido / len(items),
        total_base_imponible=total_base_imponible,
        avg_base_imponible=total_base_imponible / len(items),
        periodos=_truthy_values(items, SALARY_SLIP, "docdate", catalog),
    )


def aggregate_annual_receipts(entries: List[Dict[str, Any]], catalog: SchemaCatalog) -> Optional[AnnualReceiptsAggregation]:
    items = _with_driving_value(entries, ANNUAL_RECEIPTS, "total_liquido", catalog)
    if not items:
        return None

    return AnnualReceiptsAggregation(
        count=len(items),
        total_liquido=_total(items, ANNUAL_RECEIPTS, "total_liquido", catalog),
        total_honorario_bruto=_total(items, ANNUAL_RECEIPTS, "honorario_bruto", catalog),
        anos=_truthy_values(items, ANNUAL_RECEIPTS, "año", catalog),
    )


def aggregate_bank_accounts(entries: List[Dict[str, Any]], catalog: SchemaCatalog) -> Optional[BankAccountAggregation]:
    items = _with_driving_value(entries, BANK_ACCOUNT, "saldo_final", catalog)
    if not items:
        return None

    return BankAccountAggregation(
        count=len(items),
        saldo_final_promedio=_total(items, BANK_ACCOUNT, "saldo_final", catalog) / len(items),
        total_abonos=_total(items, BANK_ACCOUNT, "total_abonos", catalog),
        total_cargos=_total(items, BANK_ACCOUNT, "total_cargos", catalog),
    )


# (aggregation key, document type, aggregator)
AGGREGATION_RULES: tuple[tuple[str, str, Callable[[List[Dict[str, Any]], SchemaCatalog], Optional[Aggregation]]], ...] = (
    ("liquidacion_sueldo", SALARY_SLIP, aggregate_salary_slips),
    ("boletas_anual", ANNUAL_RECEIPTS, aggregate_annual_receipts),
    ("cuenta_bancaria", BANK_ACCOUNT, aggregate_bank_accounts),
)


def compute_aggregations(documents: MergedDocuments, catalog: SchemaCatalog) -> Dict[str, Aggregation]:
    aggregations: Dict[str, Aggregation] = {}
    for key, doc_type_id, aggregate in AGGREGATION_RULES:
        entries = _entries(documents.get(doc_type_id))
        if not entries:
            continue
        block = aggregate(entries, catalog)
        if block is not None:
            aggregations[key] = block
    return aggregations


def build_report(
    documents: Sequence[Union[NormalizedDocument, IncomingDocument, Dict[str, Any]]],
    catalog: SchemaCatalog,
    now: Optional[datetime] = None
) -> AggregatedReport:
    """Build the consolidated report.

    Args:
        documents: Normalized documents or raw ``{docTypeId, docDate?, data}`` records
        catalog: Catalog snapshot used for the whole build
        now: Generation timestamp, defaults to the current UTC time

    Raises:
        InvalidReportInputError: If `documents` is not a list of document records
    """
    if not isinstance(documents, (list, tuple)):
        raise InvalidReportInputError("documents must be an array", type(documents).__name__)

    incoming = []
    for index, item in enumerate(documents):
        document = _as_incoming(item)
        if document is None:
            logger.warning(f"[REPORT] Skipping malformed document record at index {index}")
            continue
        incoming.append(document)

    merged = merge_documents(incoming, catalog)
    identity = extract_identity(merged, catalog)
    aggregations = compute_aggregations(merged, catalog)

    meta = ReportMeta(
        **identity,
        generated_at=now or datetime.now(timezone.utc),
        populated_docs=list(merged),
        provided_docs=list(dict.fromkeys(document.doc_type_id for document in incoming)),
        aggregations=aggregations,
    )

    logger.info(
        f"[REPORT] Built report: {len(merged)} document type(s), "
        f"aggregations={list(aggregations)}, main_id={meta.main_id or '-'}"
    )
    return AggregatedReport(meta=meta, documents=merged)


def build_report_from_payload(payload: Any, catalog: SchemaCatalog, now: Optional[datetime] = None) -> AggregatedReport:
    """Validate a request body and build its report."""
    return build_report(parse_report_request(payload), catalog, now)
