"""Canonical data models for document intake processing."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


class ValueFrequency(str, Enum):
    """How a detected date is normalized for a document type."""
    DAY = "day"
    MONTH = "month"
    YEAR = "year"
    NONE = "none"


class FieldDescriptor(BaseModel):
    """Descriptor for one canonical field of a document type."""
    description: str = Field(default="", description="Human readable hint sent to the extraction model")


class DocumentTypeSchema(BaseModel):
    """Expected shape of one document type in the catalog."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Stable document-type identifier")
    label: str = Field(default="", description="Display name")
    value_frequency: ValueFrequency = Field(default=ValueFrequency.NONE)
    fields: Dict[str, FieldDescriptor] = Field(default_factory=dict)
    aliases: Dict[str, List[str]] = Field(default_factory=dict, description="Canonical field -> historical names")
    repeatable: Optional[bool] = Field(None, description="Whether several instances are kept side by side")
    id_fields: Optional[List[str]] = Field(None, description="Identity-bearing national ID fields")
    name_fields: Optional[List[str]] = Field(None, description="Identity-bearing person name fields")

    @field_validator("fields", mode="before")
    @classmethod
    def coerce_field_descriptors(cls, v):
        """Accept bare descriptions or presence markers as field descriptors."""
        if v is None:
            return {}
        if isinstance(v, (list, tuple)):
            return {str(name): {} for name in v}
        if isinstance(v, dict):
            coerced = {}
            for name, descriptor in v.items():
                if isinstance(descriptor, (dict, FieldDescriptor)):
                    coerced[name] = descriptor
                elif isinstance(descriptor, str):
                    coerced[name] = {"description": descriptor}
                else:
                    coerced[name] = {}
            return coerced
        return v

    @property
    def is_repeatable(self) -> bool:
        """Types without a value frequency describe one-off documents."""
        if self.repeatable is not None:
            return self.repeatable
        return self.value_frequency != ValueFrequency.NONE


class PageRange(BaseModel):
    """One-based, inclusive page span inside a source PDF."""
    model_config = ConfigDict(frozen=True)

    start: int = Field(..., ge=1)
    end: int = Field(..., ge=1)

    @model_validator(mode="after")
    def end_not_before_start(self):
        if self.end < self.start:
            raise ValueError(f"page range end ({self.end}) precedes start ({self.start})")
        return self


class NormalizedDocument(BaseModel):
    """One schema-validated extraction result for a single document type."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    doc_type_id: str = Field(..., alias="docTypeId")
    doc_date: Optional[str] = Field(None, alias="docDate", description="YYYY-MM-DD or null")
    is_multiple: bool = Field(default=False, alias="isMultiple")
    data: Union[List[Dict[str, Any]], Dict[str, Any]]
    page_range: Optional[PageRange] = Field(None, alias="pageRange")

    @model_validator(mode="after")
    def multiplicity_matches_data(self):
        if self.is_multiple != isinstance(self.data, list):
            raise ValueError("is_multiple must be true exactly when data is a list")
        return self

    @property
    def records(self) -> List[Dict[str, Any]]:
        """Data as a list regardless of multiplicity."""
        return list(self.data) if isinstance(self.data, list) else [self.data]

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class IncomingDocument(BaseModel):
    """One document record as received by the report builder."""
    model_config = ConfigDict(populate_by_name=True)

    doc_type_id: str = Field(
        ...,
        validation_alias=AliasChoices("docTypeId", "id", "doctypeid", "doc_type_id"),
        serialization_alias="docTypeId"
    )
    doc_date: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("docDate", "docdate", "periodo", "doc_date"),
        serialization_alias="docDate"
    )
    data: Any = None

    @field_validator("doc_date", mode="before")
    @classmethod
    def stringify_doc_date(cls, v):
        """Years sometimes arrive as bare integers; other unusable dates become null."""
        if isinstance(v, bool):
            return None
        if isinstance(v, int):
            return str(v)
        if isinstance(v, float):
            return str(int(v)) if v.is_integer() else None
        if isinstance(v, str) and v.strip():
            return v
        return None


class SalarySlipAggregation(BaseModel):
    """Totals over `liquidacion-sueldo` entries."""
    count: int
    total_liquido: float
    avg_liquido: float
    total_base_imponible: float
    avg_base_imponible: float
    periodos: List[Any] = Field(default_factory=list)


class AnnualReceiptsAggregation(BaseModel):
    """Totals over `boletas-anual` entries."""
    model_config = ConfigDict(populate_by_name=True)

    count: int
    total_liquido: float
    total_honorario_bruto: float
    anos: List[Any] = Field(default_factory=list, alias="años")


class BankAccountAggregation(BaseModel):
    """Totals over `cuenta-bancaria` entries."""
    count: int
    saldo_final_promedio: float
    total_abonos: float
    total_cargos: float


Aggregation = Union[SalarySlipAggregation, AnnualReceiptsAggregation, BankAccountAggregation]


class ReportMeta(BaseModel):
    """Identity, provenance and statistics of a consolidated report."""
    model_config = ConfigDict(populate_by_name=True)

    main_id: str = Field(default="", alias="mainId")
    main_name: str = Field(default="", alias="mainName")
    all_ids: List[str] = Field(default_factory=list, alias="allIds")
    all_names: List[str] = Field(default_factory=list, alias="allNames")
    generated_at: datetime = Field(..., alias="generatedAt")
    populated_docs: List[str] = Field(default_factory=list, alias="populatedDocs")
    provided_docs: List[str] = Field(default_factory=list, alias="providedDocs")
    aggregations: Dict[str, Aggregation] = Field(default_factory=dict)


class AggregatedReport(BaseModel):
    """Consolidated report over several normalized documents."""
    meta: ReportMeta
    documents: Dict[str, Union[List[Dict[str, Any]], Dict[str, Any]]] = Field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class DocumentFile(BaseModel):
    """A per-document file cut out of an upload."""
    doc_type_id: str
    filename: str
    mime_type: str
    content: bytes
    page_range: Optional[PageRange] = None


def normalized_document_to_envelope(document: NormalizedDocument) -> Dict[str, Any]:
    """Convert a NormalizedDocument to the single-document envelope older clients read."""
    first = document.records[0] if document.records else {}
    periodo = first.get("periodo") if isinstance(first, dict) else None
    return {
        "doctypeid": document.doc_type_id,
        "matched": True,
        "multiple": document.is_multiple,
        "periodo": periodo if periodo is not None else document.doc_date,
        "data": document.data,
    }
