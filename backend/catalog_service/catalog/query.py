# backend/catalog_service/catalog/query.py
"""Compile structured product filters into an Elasticsearch query document.

Everything here is pure. Numbers are read leniently: a value is taken from its
longest leading numeric prefix, so ``"12abc"`` reads as 12. A price value with
no numeric prefix at all reads as zero and its filter still applies, while a
page or limit without one is treated as absent.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

DEFAULT_PAGE = 1
DEFAULT_SIZE = 10
DEFAULT_SORT_FIELD = "price"
DEFAULT_SORT_ORDER = "asc"
SORT_ORDERS = ("asc", "desc")

_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_FIELD_NAME = re.compile(r"^[A-Za-z0-9_-]+$")
_SCALAR_TYPES = (str, int, float, bool)
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


def scan_int(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    match = _INT_PREFIX.match(raw)
    if match is None:
        return None
    value = int(match.group(1))
    # Out of 64-bit range reads as unparseable
    if not INT64_MIN <= value <= INT64_MAX:
        return None
    return value


def scan_float(raw: str) -> float:
    match = _FLOAT_PREFIX.match(raw)
    if match is None:
        return 0.0
    return float(match.group(1))


@dataclass(frozen=True)
class SearchFilters:
    page: Optional[int] = None
    limit: Optional[int] = None
    name: Optional[str] = None
    categories: Tuple[str, ...] = ()
    brand: Optional[str] = None
    colors: Tuple[str, ...] = ()
    price: Optional[float] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    specs: Mapping[str, Any] = field(default_factory=dict)
    sort_field: Optional[str] = None
    sort_order: Optional[str] = None

    @property
    def effective_page(self) -> int:
        if self.page is None or self.page <= 0:
            return DEFAULT_PAGE
        return self.page

    @property
    def effective_size(self) -> int:
        if self.limit is None or self.limit <= 0:
            return DEFAULT_SIZE
        return self.limit


def _values(params: Mapping[str, Any], key: str) -> List[str]:
    if hasattr(params, "getlist"):
        return [str(v) for v in params.getlist(key)]
    value = params.get(key)
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


def _first(params: Mapping[str, Any], key: str) -> Optional[str]:
    values = _values(params, key)
    if not values or values[0] == "":
        return None
    return values[0]


def _split_list(params: Mapping[str, Any], key: str) -> Tuple[str, ...]:
    items: List[str] = []
    for value in _values(params, key):
        items.extend(part for part in value.split(",") if part != "")
    return tuple(items)


def _positive(value: Optional[int]) -> Optional[int]:
    if value is None or value <= 0:
        return None
    return value


def _parse_specs(raw: Optional[str]) -> Dict[str, Any]:
    if raw is None:
        return {}
    try:
        decoded = json.loads(raw)
    except ValueError:
        return {}
    if not isinstance(decoded, dict):
        return {}
    return decoded


def parse_search_params(params: Mapping[str, Any]) -> SearchFilters:
    """Build filters from raw query-string parameters."""
    price = _first(params, "price")
    min_price = _first(params, "min_price")
    max_price = _first(params, "max_price")

    sort_field = sort_order = None
    sort = _first(params, "sort")
    if sort is not None:
        parts = sort.split(":")
        if len(parts) == 2:
            sort_field, sort_order = parts

    return SearchFilters(
        page=_positive(scan_int(_first(params, "page"))),
        limit=_positive(scan_int(_first(params, "limit"))),
        name=_first(params, "name"),
        categories=_split_list(params, "category"),
        brand=_first(params, "brand"),
        colors=_split_list(params, "color"),
        price=scan_float(price) if price is not None else None,
        min_price=scan_float(min_price) if min_price is not None else None,
        max_price=scan_float(max_price) if max_price is not None else None,
        specs=_parse_specs(_first(params, "specs")),
        sort_field=sort_field,
        sort_order=sort_order,
    )


def _sort_clause(filters: SearchFilters) -> List[Dict[str, str]]:
    sort_field, sort_order = DEFAULT_SORT_FIELD, DEFAULT_SORT_ORDER
    if filters.sort_field is not None and filters.sort_order is not None:
        order = filters.sort_order.strip().lower()
        if _FIELD_NAME.match(filters.sort_field) and order in SORT_ORDERS:
            sort_field, sort_order = filters.sort_field, order
    return [{sort_field: sort_order}]


def compile_query(filters: SearchFilters) -> Dict[str, Any]:
    page = filters.effective_page
    size = filters.effective_size

    should: List[Dict[str, Any]] = []
    must_filter: List[Dict[str, Any]] = []

    if filters.name:
        should.append(
            {"match": {"name": {"query": filters.name, "fuzziness": "AUTO"}}}
        )
    if filters.categories:
        must_filter.append({"terms": {"category.keyword": list(filters.categories)}})
    if filters.brand:
        must_filter.append({"term": {"brand.keyword": filters.brand}})
    if filters.colors:
        must_filter.append({"terms": {"color.keyword": list(filters.colors)}})
    if filters.price is not None:
        must_filter.append({"term": {"price": filters.price}})

    price_range: Dict[str, float] = {}
    if filters.min_price is not None:
        price_range["gte"] = filters.min_price
    if filters.max_price is not None:
        price_range["lte"] = filters.max_price
    if price_range:
        must_filter.append({"range": {"price": price_range}})

    for key in sorted(filters.specs):
        value = filters.specs[key]
        if not _FIELD_NAME.match(str(key)) or not isinstance(value, _SCALAR_TYPES):
            continue
        must_filter.append({"term": {f"specs.{key}.keyword": value}})

    bool_query: Dict[str, Any] = {"should": should, "filter": must_filter}
    if should:
        bool_query["minimum_should_match"] = 1

    return {
        "from": (page - 1) * size,
        "size": size,
        "sort": _sort_clause(filters),
        "query": {"bool": bool_query},
    }


def canonical_json(query: Mapping[str, Any]) -> str:
    return json.dumps(query, sort_keys=True, separators=(",", ":"))
