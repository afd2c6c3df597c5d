"""
Testimonial and award mining from page markup.
"""

from __future__ import annotations

import re

from bs4 import BeautifulSoup, Tag

TESTIMONIAL_MIN_LENGTH = 20
TESTIMONIAL_MAX_LENGTH = 300
AWARD_MAX_LENGTH = 200
PER_PAGE_CAP = 10

TESTIMONIAL_SELECTORS = ", ".join(
    [
        "blockquote",
        "q",
        "[class*='testimonial']",
        "[id*='testimonial']",
        "[class*='testimonio']",
        "[class*='review']",
        "[id*='review']",
        "[class*='opinion']",
        "[class*='opinio']",
    ]
)

AWARD_PATTERN = re.compile(
    r"\b("
    r"award(?:s|ed)?|winner|prize|certified|certification|"
    r"premio(?:s)?|premiad[oa]s?|galard[oó]n(?:ad[oa])?|certificad[oa]|certificaci[oó]n|"
    r"distintivo|recomendad[oa] por|"
    r"michelin|repsol|travell?ers'? choice|"
    r"pr[eé]mio|galardoado|onderscheiding|prijs"
    r")\b",
    flags=re.IGNORECASE,
)

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\s*[|•·]\s*|\n+")
_QUOTE_CHARS = "\"'“”«»‘’„"


def _clean_text(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def _dedupe(values: list[str], cap: int) -> list[str]:
    seen: set[str] = set()
    unique: list[str] = []
    for value in values:
        key = value.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(value)
        if len(unique) >= cap:
            break
    return unique


def _testimonial_texts(node: Tag) -> list[str]:
    text = _clean_text(node.get_text(" ", strip=True))
    if len(text) <= TESTIMONIAL_MAX_LENGTH:
        return [text]
    # Large review widgets: look at the individual quotes inside.
    return [
        _clean_text(child.get_text(" ", strip=True))
        for child in node.find_all(["p", "blockquote", "q"])
    ]


def extract_testimonials(soup: BeautifulSoup, *, cap: int = PER_PAGE_CAP) -> list[str]:
    found: list[str] = []
    for node in soup.select(TESTIMONIAL_SELECTORS):
        for text in _testimonial_texts(node):
            quote = text.strip(_QUOTE_CHARS + " ")
            if TESTIMONIAL_MIN_LENGTH <= len(quote) <= TESTIMONIAL_MAX_LENGTH:
                found.append(quote)
    return _dedupe(found, cap)


def extract_awards(text: str, *, cap: int = PER_PAGE_CAP) -> list[str]:
    """
    Sentences (up to 200 chars) that mention an award, prize or
    certification in one of the directory's languages.
    """

    found: list[str] = []
    for fragment in _SENTENCE_SPLIT.split(text):
        sentence = _clean_text(fragment)
        if not sentence or len(sentence) > AWARD_MAX_LENGTH:
            continue
        if AWARD_PATTERN.search(sentence):
            found.append(sentence)
    return _dedupe(found, cap)


def merge_capped(existing: list[str], incoming: list[str], *, cap: int = PER_PAGE_CAP) -> list[str]:
    return _dedupe([*existing, *incoming], cap)
