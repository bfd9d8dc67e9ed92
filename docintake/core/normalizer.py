"""Normalization of raw extraction model output.

The extraction model returns schema-approximate JSON in several shapes that
accumulated over time. `classify_extraction` decides which shape a response
has and reduces it to a list of (document type, payload) entries;
`normalize_extraction` turns those entries into `NormalizedDocument`s,
dropping anything that does not match a known schema.

Shapes understood:

* single type: ``{"liquidacion-sueldo": {...}}`` or ``{"liquidacion-sueldo": [{...}, {...}]}``
* multiple types: ``{"cedula-identidad": {...}, "cuenta-bancaria": [...], "notes": "..."}``
* bare record for a requested type: ``{"rut": "...", "nombres": "..."}``
* single-document envelope: ``{"doctypeid": ..., "multiple": ..., "periodo": ..., "data": ...}``
* report envelope: ``{"meta": {...}, "documents": {"cedula-identidad": {...}}}``
* page-sliced envelope: ``{"documents": [{"id": ..., "start": 1, "end": 2, "docdate": ...}]}``
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Optional, Union

from .catalog import SchemaCatalog
from .dates import normalize_doc_date
from .json_utils import parse_extraction_text
from .models import NormalizedDocument, PageRange
from .resolver import has_value, resolve_field

logger = logging.getLogger(__name__)

DATE_FIELDS = ("periodo", "docdate")
_SLICE_KEYS = ("id", "start", "end")


@dataclass(frozen=True)
class ExtractionEntry:
    """One (document type, payload) pair found in a raw extraction."""
    doc_type_id: str
    payload: Any
    page_range: Optional[PageRange] = None


@dataclass(frozen=True)
class SingleTypeExtraction:
    entry: ExtractionEntry

    @property
    def entries(self) -> tuple[ExtractionEntry, ...]:
        return (self.entry,)


@dataclass(frozen=True)
class MultiTypeExtraction:
    entries: tuple[ExtractionEntry, ...]


@dataclass(frozen=True)
class InvalidExtraction:
    reason: str

    @property
    def entries(self) -> tuple[ExtractionEntry, ...]:
        return ()


ExtractionShape = Union[SingleTypeExtraction, MultiTypeExtraction, InvalidExtraction]


def _shape_from_entries(entries: Iterable[ExtractionEntry], empty_reason: str) -> ExtractionShape:
    entries = tuple(entries)
    if not entries:
        return InvalidExtraction(empty_reason)
    if len(entries) == 1:
        return SingleTypeExtraction(entries[0])
    return MultiTypeExtraction(entries)


def _with_doc_date(payload: Any, doc_date: Any) -> Any:
    """Copy an envelope-level date onto a record that carries none."""
    if not has_value(doc_date, non_empty=True) or not isinstance(payload, dict):
        return payload
    if any(has_value(payload.get(name), non_empty=True) for name in DATE_FIELDS):
        return payload
    return {**payload, "docdate": doc_date}


def _adapt_single_document_envelope(raw: dict, known_ids: frozenset[str]) -> Optional[ExtractionShape]:
    doc_type_id = raw.get("doctypeid")
    if not isinstance(doc_type_id, str) or "data" not in raw:
        return None
    if doc_type_id not in known_ids:
        return InvalidExtraction(f"envelope names unknown document type '{doc_type_id}'")
    return SingleTypeExtraction(ExtractionEntry(doc_type_id, _with_doc_date(raw["data"], raw.get("periodo"))))


def _adapt_report_envelope(raw: dict, known_ids: frozenset[str]) -> Optional[ExtractionShape]:
    documents = raw.get("documents")
    if not isinstance(documents, dict):
        return None
    entries = [
        ExtractionEntry(doc_type_id, payload)
        for doc_type_id, payload in documents.items()
        if doc_type_id in known_ids
    ]
    return _shape_from_entries(entries, "report envelope holds no known document types")


def _page_range(item: dict) -> Optional[PageRange]:
    start, end = item.get("start"), item.get("end")
    if isinstance(start, bool) or isinstance(end, bool):
        return None
    if isinstance(start, int) and isinstance(end, int) and 0 < start <= end:
        return PageRange(start=start, end=end)
    return None


def _adapt_page_sliced_envelope(raw: dict, known_ids: frozenset[str]) -> Optional[ExtractionShape]:
    documents = raw.get("documents")
    if not isinstance(documents, list):
        return None

    entries = []
    for item in documents:
        if not isinstance(item, dict) or item.get("id") not in known_ids:
            continue
        if "data" in item:
            payload = item["data"]
        else:
            payload = {key: value for key, value in item.items() if key not in _SLICE_KEYS}
        entries.append(ExtractionEntry(item["id"], _with_doc_date(payload, item.get("docdate")), _page_range(item)))

    return _shape_from_entries(entries, "page-sliced envelope holds no known document types")


def _adapt_unmatched_document(raw: dict, known_ids: frozenset[str]) -> Optional[ExtractionShape]:
    document_type = raw.get("document_type")
    if not isinstance(document_type, str) or "data" not in raw:
        return None
    if document_type in known_ids:
        return SingleTypeExtraction(ExtractionEntry(document_type, raw["data"]))
    return InvalidExtraction(f"model reported an unrecognized document type '{document_type}'")


ENVELOPE_ADAPTERS: tuple[Callable[[dict, frozenset[str]], Optional[ExtractionShape]], ...] = (
    _adapt_single_document_envelope,
    _adapt_report_envelope,
    _adapt_page_sliced_envelope,
    _adapt_unmatched_document,
)


def classify_extraction(
    raw: Any,
    known_ids: Iterable[str],
    doctype_hint: Optional[str] = None
) -> ExtractionShape:
    """Decide which response shape `raw` has and list its document entries."""
    if not isinstance(raw, dict):
        return InvalidExtraction(f"expected a JSON object, got {type(raw).__name__}")

    known_ids = frozenset(known_ids)

    if doctype_hint and doctype_hint in raw:
        return SingleTypeExtraction(ExtractionEntry(doctype_hint, raw[doctype_hint]))

    known_keys = [key for key in raw if key in known_ids]
    skipped = [key for key in raw if key not in known_ids]
    if known_keys and skipped:
        logger.debug(f"[NORMALIZE] Skipping keys without a schema: {skipped}")

    if known_keys:
        return _shape_from_entries(
            (ExtractionEntry(key, raw[key]) for key in known_keys),
            "no known document type keys"
        )

    for adapter in ENVELOPE_ADAPTERS:
        shape = adapter(raw, known_ids)
        if shape is not None:
            return shape

    if doctype_hint:
        # The model answered with the requested type's fields directly
        return SingleTypeExtraction(ExtractionEntry(doctype_hint, raw))

    return InvalidExtraction(f"no known document type keys among {list(raw)[:10]}")


def find_raw_doc_date(record: dict, doc_type_id: str, catalog: SchemaCatalog) -> Any:
    for name in DATE_FIELDS:
        value = record.get(name)
        if has_value(value, non_empty=True):
            return value
    return resolve_field(record, doc_type_id, "docdate", catalog, non_empty=True)


def _normalize_entry(entry: ExtractionEntry, catalog: SchemaCatalog) -> Optional[NormalizedDocument]:
    doc_type_id = entry.doc_type_id
    schema = catalog.get_schema(doc_type_id)
    if schema is None:
        logger.debug(f"[NORMALIZE] {doc_type_id} - No schema, skipping")
        return None

    payload = entry.payload
    if isinstance(payload, str):
        logger.warning(f"[NORMALIZE] {doc_type_id} - Model returned text instead of structured data: {payload[:100]}")
        return None

    if isinstance(payload, list):
        records = [item for item in payload if isinstance(item, dict)]
        if len(records) < len(payload):
            logger.warning(f"[NORMALIZE] {doc_type_id} - Dropped {len(payload) - len(records)} non-object entries")
        if not records:
            logger.warning(f"[NORMALIZE] {doc_type_id} - No object entries left, skipping")
            return None
        data: Any = records
        first = records[0]
    elif isinstance(payload, dict):
        data = payload
        first = payload
    else:
        logger.warning(f"[NORMALIZE] {doc_type_id} - Unsupported payload type {type(payload).__name__}, skipping")
        return None

    return NormalizedDocument(
        doc_type_id=doc_type_id,
        doc_date=normalize_doc_date(find_raw_doc_date(first, doc_type_id, catalog), schema.value_frequency),
        is_multiple=isinstance(data, list),
        data=data,
        page_range=entry.page_range,
    )


def normalize_extraction(
    raw: Any,
    catalog: SchemaCatalog,
    doctype_hint: Optional[str] = None
) -> list[NormalizedDocument]:
    """Convert a raw extraction into normalized documents.

    Unknown document types, text payloads and non-object list entries are
    dropped. An empty list means the response held no recognizable data.
    """
    shape = classify_extraction(raw, catalog.known_ids, doctype_hint)
    if isinstance(shape, InvalidExtraction):
        logger.warning(f"[NORMALIZE] No recognizable document data: {shape.reason}")
        return []

    documents = []
    for entry in shape.entries:
        document = _normalize_entry(entry, catalog)
        if document is not None:
            documents.append(document)

    logger.info(f"[NORMALIZE] Produced {len(documents)} document(s): {[d.doc_type_id for d in documents]}")
    return documents


def normalize_extraction_text(
    text: str,
    catalog: SchemaCatalog,
    doctype_hint: Optional[str] = None
) -> list[NormalizedDocument]:
    """Parse raw model text and normalize it.

    Raises:
        ExtractionParseError: If the text holds no JSON object
    """
    return normalize_extraction(parse_extraction_text(text), catalog, doctype_hint)
