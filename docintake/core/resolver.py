"""Field resolution across historical field names.

The extraction model's field naming drifted between catalog revisions
(`periodo` vs `docdate`, `liquido_pagar` vs `liquido_a_pagar`). Readers go
through `resolve_field` so they see the canonical name regardless of which
revision produced the record.
"""

import math
import re
from collections.abc import Iterable
from typing import Any, Optional

from .catalog import SchemaCatalog

# Leading decimal number, the part a lenient float parse accepts
_LEADING_NUMBER = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def has_value(value: Any, non_empty: bool = False) -> bool:
    """Whether a field value counts as present.

    `None` is always missing. The empty string is missing only when
    `non_empty` is requested.
    """
    if value is None:
        return False
    if non_empty and isinstance(value, str) and value == "":
        return False
    return True


def resolve_field(
    record: Any,
    doc_type_id: str,
    field_name: str,
    catalog: Optional[SchemaCatalog] = None,
    *,
    non_empty: bool = False,
    aliases: Optional[Iterable[str]] = None
) -> Any:
    """Return the value of `field_name`, falling back through its aliases in order.

    Args:
        record: Candidate record, anything that is not a dict resolves to None
        doc_type_id: Document type owning the alias list
        field_name: Canonical field name
        catalog: Catalog snapshot supplying the alias table
        non_empty: Treat empty strings as missing
        aliases: Explicit alias list, overrides the catalog's

    Returns:
        The first present value, or None when nothing matches
    """
    if not isinstance(record, dict):
        return None

    value = record.get(field_name)
    if has_value(value, non_empty):
        return value

    if aliases is None:
        aliases = catalog.aliases_for(doc_type_id, field_name) if catalog is not None else ()

    for alias in aliases:
        value = record.get(alias)
        if has_value(value, non_empty):
            return value

    return None


def parse_amount(value: Any) -> float:
    """Parse a numeric field the way a lenient float parse does; failures yield 0.

    Only the leading number is read, so `"1.5 UF"` is 1.5 and `"500.000"`
    is 500.0. Non-numeric text, booleans, NaN and infinities give 0.
    """
    if value is None or isinstance(value, bool):
        return 0.0

    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return 0.0
    else:
        match = _LEADING_NUMBER.match(str(value).strip())
        if not match:
            return 0.0
        try:
            number = float(match.group(0))
        except ValueError:
            return 0.0

    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number
