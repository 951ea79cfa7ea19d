"""
Query building logic for the core module.

Translates QueryOptions into the query string understood by API Platform
filters, and decodes Hydra collection envelopes into CollectionPage objects.
"""

import json
import re
from collections.abc import Mapping
from urllib.parse import quote

from .models import CollectionPage, Pagination, QueryOptions

PAGE_PATTERN = re.compile(r"[?&]page=(\d+)")


def format_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return quote(str(value), safe="/:,@")


def build_filter(prop: str, value) -> list[str]:
    """Build the query parameters of a single filter."""
    # a list of values is sent as `prop[]=a&prop[]=b`
    if isinstance(value, (list, tuple, set, frozenset)):
        return [f"{prop}[]={format_value(item)}" for item in value]
    # operators (range, date, exists...) are sent as `prop[operator]=value`
    if isinstance(value, Mapping):
        return [f"{prop}[{key}]={format_value(item)}" for key, item in value.items()]
    return [f"{prop}={format_value(value)}"]


def build_query_string(options: QueryOptions) -> str:
    """
    Build the query string for a GET request.

    Args:
        options: the filters, sorting and page to apply

    Returns:
        The query string, prefixed with `?` unless it is empty
    """
    query = []
    for prop, value in (options.filter or {}).items():
        query.extend(build_filter(prop, value))
    if options.sort:
        query.append(f"order[{options.sort.prop}]={options.sort.order}")
    if options.page:
        query.append(f"page={options.page}")
    q = "&".join(query)
    return f"?{q}" if q else ""


def build_props(props: list) -> dict:
    """Convert a property selection into the shape expected by the `props` header."""
    result = {}
    for index, prop in enumerate(props):
        if isinstance(prop, Mapping):
            result[prop["key"]] = build_props(prop.get("props", []))
        else:
            result[index] = prop
    return result


def build_headers(options: QueryOptions) -> dict[str, str]:
    if not options.props:
        return {}
    return {"props": json.dumps(build_props(options.props))}


def hydra_get(envelope: Mapping, key: str):
    # API Platform 4 drops the `hydra:` prefix by default
    if f"hydra:{key}" in envelope:
        return envelope[f"hydra:{key}"]
    return envelope.get(key)


def parse_page(link: str | None) -> int | None:
    if not link:
        return None
    match = PAGE_PATTERN.search(link)
    if not match:
        return None
    return int(match.group(1))


def decode_pagination(envelope: Mapping, items_count: int) -> Pagination | None:
    view = hydra_get(envelope, "view")
    if not view or "page=" not in view.get("@id", ""):
        return None
    current = parse_page(view["@id"])
    if current is None:
        return None
    return Pagination(
        current=current,
        # partial views may omit the first/last links
        first=parse_page(hydra_get(view, "first")) or current,
        last=parse_page(hydra_get(view, "last")) or current,
        previous=parse_page(hydra_get(view, "previous")),
        next=parse_page(hydra_get(view, "next")),
        total_items_count=hydra_get(envelope, "totalItems"),
        items_count=items_count,
    )


def decode_collection(envelope: Mapping) -> CollectionPage:
    """Decode a Hydra collection envelope."""
    members = list(hydra_get(envelope, "member") or [])
    return CollectionPage(data=members, pagination=decode_pagination(envelope, len(members)))
