"""Listing extraction from the JSON payload embedded in a results page."""

from __future__ import annotations

import json
from typing import Any, Iterable, Mapping

import structlog
from selectolax.parser import HTMLParser

from ..config import ExtractorSettings
from ..errors import ParseFailure, SchemaFailure
from ..records import ListingRecord

QUERIES_PATH = ("props", "pageProps", "dehydratedState", "queries")
# keys whose arrays are walked explicitly; every other list of mappings inside
# a query's data is treated as a seller-category collection (private, agency, ...)
_STRUCTURAL_KEYS = ("pages", "data")


def dig(node: Any, *path: str | int) -> Any:
    """Follow ``path`` through nested mappings/lists, returning ``None`` on any mismatch."""

    for key in path:
        if isinstance(key, int):
            if not isinstance(node, list) or not -len(node) <= key < len(node):
                return None
            node = node[key]
        elif isinstance(node, Mapping):
            node = node.get(key)
        else:
            return None
    return node


def as_number(value: Any) -> float | int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        cleaned = value.replace(",", "").strip()
        if not cleaned:
            return None
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


def as_text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _is_collection(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, Mapping) for item in value)


def _mapping_collections(node: Mapping) -> list[list]:
    return [value for value in node.values() if _is_collection(value)]


class Extractor:
    """Turn raw page HTML into normalised :class:`ListingRecord` objects."""

    def __init__(
        self,
        settings: ExtractorSettings | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.settings = settings or ExtractorSettings()
        self.logger = logger or structlog.get_logger("listing_watch.extractor")

    def extract(self, html: str) -> list[ListingRecord]:
        payload = self.load_payload(html)
        items = self.collect_items(payload)
        records: list[ListingRecord] = []
        dropped = 0
        for item in items:
            record = self.normalise(item)
            if record is None:
                dropped += 1
                continue
            records.append(record)
        self.logger.debug("extracted_listings", items=len(items), listings=len(records), dropped=dropped)
        return records

    def load_payload(self, html: str) -> Any:
        script_id = self.settings.data_script_id
        node = HTMLParser(html).css_first(f'script[id="{script_id}"]')
        if node is None:
            raise ParseFailure(f"Could not find {script_id} on page")
        raw = node.text(deep=True, strip=True)
        if not raw:
            raise ParseFailure(f"{script_id} block is empty")
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ParseFailure(f"{script_id} block is not valid JSON: {exc}") from exc

    def collect_items(self, payload: Any) -> list[Mapping]:
        """Concatenate every listing array found across the cached queries, in order."""

        queries = dig(payload, *QUERIES_PATH)
        if not isinstance(queries, list) or not queries:
            raise SchemaFailure("Could not find listing data in page")
        collections: list[list] = []
        for query in queries:
            collections.extend(self._query_collections(query))
        if not collections:
            raise SchemaFailure("No listing collection in any cached query")
        items: list[Mapping] = []
        for collection in collections:
            items.extend(collection)
        return items

    @staticmethod
    def _query_collections(query: Any) -> Iterable[list]:
        data = dig(query, "state", "data")
        if not isinstance(data, Mapping):
            return []
        found: list[list] = []
        pages = data.get("pages")
        if isinstance(pages, list):
            for page in pages:
                page_data = dig(page, "data")
                if _is_collection(page_data):
                    found.append(page_data)
                elif isinstance(page_data, Mapping):
                    found.extend(_mapping_collections(page_data))
        inner = data.get("data")
        if _is_collection(inner):
            found.append(inner)
        elif isinstance(inner, Mapping):
            found.extend(_mapping_collections(inner))
        for key, value in data.items():
            if key not in _STRUCTURAL_KEYS and _is_collection(value):
                found.append(value)
        return found

    def normalise(self, item: Mapping) -> ListingRecord | None:
        token = item.get("token")
        if isinstance(token, bool) or not isinstance(token, (str, int)):
            return None
        token = str(token).strip()
        if not token:
            return None
        details = item.get("additionalDetails")
        return ListingRecord(
            token=token,
            price=as_number(item.get("price")),
            area=as_number(dig(details, "squareMeter")),
            address=self.format_address(item.get("address")),
            rooms=as_number(dig(details, "roomsCount")),
            property_type=as_text(dig(details, "property", "text")),
            ad_type=as_text(item.get("adType")),
            link=self.settings.detail_url_template.format(token=token),
        )

    @staticmethod
    def format_address(address: Any) -> str:
        street = as_text(dig(address, "street", "text"))
        house = as_text(dig(address, "house", "number"))
        street_line = f"{street} {house}".strip()
        parts = [
            street_line,
            as_text(dig(address, "neighborhood", "text")),
            as_text(dig(address, "city", "text")),
        ]
        return ", ".join(part for part in parts if part)


__all__ = ["Extractor", "as_number", "as_text", "dig"]
