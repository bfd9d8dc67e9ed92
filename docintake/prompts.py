"""
Prompts module for Chilean document extraction.
Builds the system instructions sent to the Gemini API from the schema catalog.
"""

import json
from typing import Optional

from docintake.core.catalog import SchemaCatalog
from docintake.core.models import DocumentTypeSchema, ValueFrequency

PERIOD_FORMATS = {
    ValueFrequency.DAY: "YYYY-MM-DD",
    ValueFrequency.MONTH: "YYYY-MM",
    ValueFrequency.YEAR: "YYYY",
    ValueFrequency.NONE: "YYYY-MM-DD",
}

EXTRACTION_SYSTEM_INSTRUCTION = """You are a data extraction expert for Chilean personal and financial documents
(cédula de identidad, liquidaciones de sueldo, cartolas bancarias, informes de boletas de honorarios).

Read the whole document before extracting. Amounts are Chilean pesos; return them as plain numbers
without thousands separators or currency symbols. RUTs keep their usual format (12.345.678-9).

{document_type_section}

Known document types and their fields:
{schemas}

Instructions:
1. Identify the document type using the exact key from the list above.
2. Extract ALL listed fields for that type. Use null for values that are not present.
3. Add a "periodo" field with the document period in the format given for the type.
4. If the document holds MULTIPLE instances of the same type (for example several months of pay slips),
   return an array with one object per instance.
5. If the upload holds several different document types, return one key per type.

Output format:
{{
  "<document-type-key>": {{ "periodo": "<period>", ...fields }}
}}

OR for multiple instances:
{{
  "<document-type-key>": [
    {{ "periodo": "2025-07", ...fields }},
    {{ "periodo": "2025-08", ...fields }}
  ]
}}

Return ONLY valid JSON. No markdown, no explanations."""


def describe_schema(schema: DocumentTypeSchema) -> dict:
    """Compact description of one document type for the prompt."""
    return {
        "label": schema.label or schema.id,
        "periodo": PERIOD_FORMATS[schema.value_frequency],
        "campos": {name: descriptor.description for name, descriptor in schema.fields.items()},
    }


def build_extraction_prompt(catalog: SchemaCatalog, doctype_hint: Optional[str] = None) -> str:
    """System instruction for one extraction call.

    With a hint only that type is described; otherwise the model picks from the whole catalog.
    """
    hinted = catalog.get_schema(doctype_hint) if doctype_hint else None

    if hinted is not None:
        schemas = {hinted.id: describe_schema(hinted)}
        section = f'Document type: {hinted.id}. Use exactly the key "{hinted.id}".'
    else:
        schemas = {schema.id: describe_schema(schema) for schema in catalog.list_schemas()}
        section = "Document type: auto-detect from: " + ", ".join(schemas)

    return EXTRACTION_SYSTEM_INSTRUCTION.format(
        document_type_section=section,
        schemas=json.dumps(schemas, indent=2, ensure_ascii=False),
    )


def build_user_prompt(doctype_hint: Optional[str] = None) -> str:
    if doctype_hint:
        return f"Extract the {doctype_hint} data from this document."
    return "Extract the data from this document."
