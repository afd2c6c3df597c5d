"""
schema.org JSON-LD extraction restricted to business-describing types.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from typing import Any

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

BUSINESS_SCHEMA_TYPES = frozenset(
    {
        "LocalBusiness",
        "Organization",
        "Corporation",
        "Restaurant",
        "FoodEstablishment",
        "CafeOrCoffeeShop",
        "BarOrPub",
        "Bakery",
        "Winery",
        "Brewery",
        "Store",
        "GroceryStore",
        "ClothingStore",
        "Hotel",
        "LodgingBusiness",
        "BedAndBreakfast",
        "Hostel",
        "MedicalBusiness",
        "MedicalClinic",
        "Dentist",
        "Physician",
        "Pharmacy",
        "HealthAndBeautyBusiness",
        "BeautySalon",
        "HairSalon",
        "DaySpa",
        "ProfessionalService",
        "LegalService",
        "Attorney",
        "AccountingService",
        "FinancialService",
        "RealEstateAgent",
        "AutomotiveBusiness",
        "HomeAndConstructionBusiness",
        "SportsActivityLocation",
        "EntertainmentBusiness",
        "TravelAgency",
        "EducationalOrganization",
        "School",
        "TouristAttraction",
    }
)


def _short_type(value: str) -> str:
    # "http://schema.org/Restaurant" and "schema:Restaurant" both mean Restaurant.
    tail = value.rsplit("/", 1)[-1]
    return tail.rsplit(":", 1)[-1].strip()


def record_types(record: dict[str, Any]) -> set[str]:
    raw = record.get("@type")
    if isinstance(raw, str):
        return {_short_type(raw)}
    if isinstance(raw, list):
        return {_short_type(item) for item in raw if isinstance(item, str)}
    return set()


def _walk(node: Any) -> Iterator[dict[str, Any]]:
    if isinstance(node, list):
        for item in node:
            yield from _walk(item)
        return
    if not isinstance(node, dict):
        return
    graph = node.get("@graph")
    if graph is not None:
        yield from _walk(graph)
    if "@type" in node:
        yield node


def _load_block(raw_text: str) -> Any:
    text = raw_text.strip()
    # Some CMSs wrap the payload in an HTML comment or CDATA marker.
    for prefix, suffix in (("<!--", "-->"), ("<![CDATA[", "]]>")):
        if text.startswith(prefix) and text.endswith(suffix):
            text = text[len(prefix) : -len(suffix)].strip()
    return json.loads(text)


def extract_structured_data(
    soup: BeautifulSoup,
    *,
    allowed_types: frozenset[str] = BUSINESS_SCHEMA_TYPES,
    page_url: str | None = None,
) -> list[dict[str, Any]]:
    """
    Return every JSON-LD record whose @type intersects ``allowed_types``.
    Malformed blocks are skipped.
    """

    records: list[dict[str, Any]] = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw_text = script.string or script.get_text() or ""
        if not raw_text.strip():
            continue
        try:
            payload = _load_block(raw_text)
        except ValueError as exc:
            logger.debug("Skipping malformed JSON-LD url=%s error=%s", page_url, exc)
            continue
        for record in _walk(payload):
            if record_types(record) & allowed_types:
                records.append(record)
    return records


def dedupe_records(records: list[dict[str, Any]]) -> list[dict[str, Any]]:
    seen: set[str] = set()
    unique: list[dict[str, Any]] = []
    for record in records:
        key = json.dumps(record, sort_keys=True, default=str)
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique
