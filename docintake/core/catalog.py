"""Document-type schema catalog.

A `SchemaCatalog` is an immutable snapshot of the known document types, their
value frequencies, field aliases and identity-bearing fields. Pipeline
operations take one snapshot and use it for their whole duration.
`CatalogProvider` owns the cached snapshot and its time-based refresh.
"""

import json
import logging
import threading
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .exceptions import SchemaCatalogError
from .models import DocumentTypeSchema, ValueFrequency

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent.parent / "data"
DEFAULT_CATALOG_PATH = DATA_DIR / "doctypes.json"
DEFAULT_ALIASES_PATH = DATA_DIR / "field_aliases.json"

# Identity-bearing fields checked on every document type, extended per schema
DEFAULT_ID_FIELDS = ("rut",)
DEFAULT_NAME_FIELDS = ("nombre", "nombres", "trabajador_nombre", "titular_nombre")

# Older catalogs describe the period with a format string instead of a frequency
_PERIOD_FORMAT_FREQUENCIES = {
    "YYYY": ValueFrequency.YEAR,
    "YYYY-MM": ValueFrequency.MONTH,
    "YYYY-MM-DD": ValueFrequency.DAY,
}


@dataclass(frozen=True)
class IdentityFields:
    """Field names that carry a national ID or a person name."""
    id_fields: tuple[str, ...]
    name_fields: tuple[str, ...]


def _merge_names(base: Iterable[str], extra: Optional[Iterable[str]]) -> tuple[str, ...]:
    merged = list(base)
    for name in extra or ():
        if isinstance(name, str) and name and name not in merged:
            merged.append(name)
    return tuple(merged)


class SchemaCatalog:
    """Read-only mapping from document-type id to its schema."""

    def __init__(
        self,
        schemas: Iterable[DocumentTypeSchema],
        aliases: Optional[Mapping[str, Mapping[str, Iterable[str]]]] = None
    ) -> None:
        by_id: Dict[str, DocumentTypeSchema] = {}
        for schema in schemas:
            if schema.id in by_id:
                raise SchemaCatalogError(f"Duplicate document type id '{schema.id}'")
            by_id[schema.id] = schema
        self._schemas = by_id

        table: Dict[str, Dict[str, tuple[str, ...]]] = {}
        for schema in by_id.values():
            for field_name, names in schema.aliases.items():
                table.setdefault(schema.id, {})[field_name] = _merge_names((), names)

        for doc_type_id, fields in (aliases or {}).items():
            if not isinstance(fields, Mapping):
                logger.warning(f"Ignoring malformed alias table entry for '{doc_type_id}'")
                continue
            for field_name, names in fields.items():
                if isinstance(names, str) or not isinstance(names, Iterable):
                    logger.warning(f"Ignoring malformed aliases for '{doc_type_id}.{field_name}'")
                    continue
                existing = table.setdefault(doc_type_id, {}).get(field_name, ())
                table[doc_type_id][field_name] = _merge_names(existing, names)

        self._aliases = table

    def __contains__(self, doc_type_id: object) -> bool:
        return doc_type_id in self._schemas

    def __len__(self) -> int:
        return len(self._schemas)

    @property
    def known_ids(self) -> frozenset[str]:
        return frozenset(self._schemas)

    def get_schema(self, doc_type_id: str) -> Optional[DocumentTypeSchema]:
        return self._schemas.get(doc_type_id)

    def list_schemas(self) -> list[DocumentTypeSchema]:
        return list(self._schemas.values())

    def aliases_for(self, doc_type_id: str, field_name: str) -> tuple[str, ...]:
        return self._aliases.get(doc_type_id, {}).get(field_name, ())

    def alias_table(self) -> Dict[str, Dict[str, list[str]]]:
        return {
            doc_type_id: {name: list(aliases) for name, aliases in fields.items()}
            for doc_type_id, fields in self._aliases.items()
        }

    def frequency_of(self, doc_type_id: str) -> ValueFrequency:
        schema = self._schemas.get(doc_type_id)
        return schema.value_frequency if schema else ValueFrequency.NONE

    def is_repeatable(self, doc_type_id: str) -> bool:
        schema = self._schemas.get(doc_type_id)
        return schema.is_repeatable if schema else False

    def identity_fields(self, doc_type_id: str) -> IdentityFields:
        schema = self._schemas.get(doc_type_id)
        if schema is None:
            return IdentityFields(DEFAULT_ID_FIELDS, DEFAULT_NAME_FIELDS)
        return IdentityFields(
            _merge_names(DEFAULT_ID_FIELDS, schema.id_fields),
            _merge_names(DEFAULT_NAME_FIELDS, schema.name_fields),
        )


def _frequency_from_record(record: Mapping[str, Any]) -> Any:
    for key in ("valueFrequency", "value_frequency", "freq"):
        if record.get(key):
            return record[key]
    period_format = record.get("periodo")
    if isinstance(period_format, str):
        return _PERIOD_FORMAT_FREQUENCIES.get(period_format.strip().upper(), ValueFrequency.NONE)
    return ValueFrequency.NONE


def _schema_from_record(record: Any, fallback_id: Optional[str], source: Optional[str]) -> Optional[DocumentTypeSchema]:
    if not isinstance(record, Mapping):
        logger.warning(f"Skipping non-object catalog entry {fallback_id or ''!r}")
        return None

    doc_type_id = record.get("id") or record.get("doctypeid") or fallback_id
    if not doc_type_id:
        logger.warning("Skipping catalog entry without an id")
        return None

    try:
        return DocumentTypeSchema(
            id=doc_type_id,
            label=record.get("label") or "",
            value_frequency=_frequency_from_record(record),
            fields=record.get("fields", record.get("campos")),
            aliases=record.get("aliases") or {},
            repeatable=record.get("repeatable"),
            id_fields=record.get("id_fields"),
            name_fields=record.get("name_fields"),
        )
    except ValidationError as e:
        raise SchemaCatalogError(f"Invalid schema for '{doc_type_id}'", source, e) from e


def catalog_from_data(
    data: Any,
    aliases: Optional[Mapping[str, Mapping[str, Iterable[str]]]] = None,
    source: Optional[str] = None
) -> SchemaCatalog:
    """Build a catalog from either a list of schema records or an id-keyed mapping."""
    if isinstance(data, list):
        entries = [(None, record) for record in data]
    elif isinstance(data, Mapping):
        entries = list(data.items())
    else:
        raise SchemaCatalogError(f"Expected a list or object, got {type(data).__name__}", source)

    schemas = []
    for fallback_id, record in entries:
        schema = _schema_from_record(record, fallback_id, source)
        if schema is not None:
            schemas.append(schema)

    return SchemaCatalog(schemas, aliases)


def _read_json(path: Path) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise SchemaCatalogError("Unable to read catalog file", str(path), e) from e


def load_catalog(path: Path | str, aliases_path: Optional[Path | str] = None) -> SchemaCatalog:
    """Load a catalog file, optionally merging a separate alias table."""
    path = Path(path)
    aliases = _read_json(Path(aliases_path)) if aliases_path else None
    if aliases is not None and not isinstance(aliases, Mapping):
        raise SchemaCatalogError("Alias table must be an object", str(aliases_path))

    catalog = catalog_from_data(_read_json(path), aliases, source=str(path))
    logger.info(f"Loaded {len(catalog)} document types from {path.name}")
    return catalog


def load_default_catalog() -> SchemaCatalog:
    """Load the catalog bundled with the package."""
    return load_catalog(DEFAULT_CATALOG_PATH, DEFAULT_ALIASES_PATH)


class CatalogProvider:
    """Cache of the schema catalog with a time-based expiry.

    Constructed once at process start and injected where a catalog is needed.
    A reload that fails while a previous snapshot exists keeps serving the
    previous snapshot until the next expiry.
    """

    def __init__(
        self,
        loader: Callable[[], SchemaCatalog] = load_default_catalog,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must not be negative")
        self._loader = loader
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._catalog: Optional[SchemaCatalog] = None
        self._loaded_at: Optional[float] = None

    @classmethod
    def from_settings(cls, settings) -> "CatalogProvider":
        catalog_path = settings.catalog_path or DEFAULT_CATALOG_PATH
        aliases_path = settings.aliases_path or (DEFAULT_ALIASES_PATH if settings.catalog_path is None else None)
        return cls(
            loader=lambda: load_catalog(catalog_path, aliases_path),
            ttl_seconds=settings.catalog_ttl_seconds,
        )

    def _is_expired(self) -> bool:
        return self._loaded_at is None or (self._clock() - self._loaded_at) >= self._ttl_seconds

    def snapshot(self) -> SchemaCatalog:
        """Return the current catalog, reloading it when the cache has expired."""
        with self._lock:
            if self._catalog is None or self._is_expired():
                self._reload()
            return self._catalog

    def refresh(self) -> SchemaCatalog:
        """Reload the catalog now, regardless of its age."""
        with self._lock:
            self._reload()
            return self._catalog

    def invalidate(self) -> None:
        with self._lock:
            self._catalog = None
            self._loaded_at = None

    def _reload(self) -> None:
        try:
            catalog = self._loader()
        except Exception as e:
            if self._catalog is None:
                if isinstance(e, SchemaCatalogError):
                    raise
                raise SchemaCatalogError("Unable to load schema catalog", original_error=e) from e
            logger.warning(f"Schema catalog reload failed, serving previous snapshot: {e}")
            self._loaded_at = self._clock()
            return

        self._catalog = catalog
        self._loaded_at = self._clock()
        logger.debug(f"Schema catalog refreshed ({len(catalog)} document types)")
