"""
Text normalization and content-quality heuristics.

Reader/search APIs hand back loosely structured markdown-ish text, often
scraped from shop pages or site indexes. The helpers here clean that text and
decide whether a candidate is an article worth showing at all.
"""

import hashlib
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional
from urllib.parse import urlparse

SUMMARY_MAX_CHARS = 200
SUMMARY_FALLBACK_CHARS = 150

_HTML_TAG_RE = re.compile(r"<[^>]*>")
_MARKDOWN_LINK_RE = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_BARE_URL_RE = re.compile(r"https?://\S+")
_NUMERIC_ENTITY_RE = re.compile(r"&#\d+;")
_NAMED_ENTITY_RE = re.compile(r"&[a-z]+;", re.IGNORECASE)
_BULLET_RE = re.compile(r"^\s*[*\-•]\s*", re.MULTILINE)
_WHITESPACE_RE = re.compile(r"\s+")
_SENTENCE_RE = re.compile(r"[^.!?]*[.!?]+")

# Any single hit marks the page as commercial
SALES_PATTERNS = [
    # Shopping actions
    re.compile(r"\b(buy now|add to cart|shop now|order now|get yours|shop jewelry)\b", re.I),
    re.compile(r"\b(find your|your forever|perfect gift|gift for)\b", re.I),
    # Pricing and discounts
    re.compile(r"\b(sale|discount|\d+% off|free shipping|save up to)\b", re.I),
    re.compile(r"\$\d+"),
    re.compile(r"\b(starting at|price|pricing)\b", re.I),
    re.compile(r"\bfrom \$", re.I),
    # Urgency
    re.compile(r"\b(limited time|act now|don't miss|hurry|exclusive offer)\b", re.I),
    # Cart and checkout
    re.compile(r"\b(checkout|shopping cart|add to bag|add to wishlist)\b", re.I),
    # Product pages
    re.compile(r"\b(in stock|out of stock|ships in|delivery|returns)\b", re.I),
    re.compile(r"\b(browse our|shop our|explore our collection)\b", re.I),
]

NAVIGATION_PATTERNS = [
    re.compile(r"\* \[.*?\]\(.*?\) \* \[.*?\]\("),
    re.compile(r"\bnavigation\b.*\bmenu\b", re.I),
    re.compile(r"\bbreadcrumb", re.I),
]

LANDING_MIN_LINKS = 5
LANDING_LINK_RATIO = 0.3


def clean_text(text: Optional[str]) -> str:
    """Strip HTML, markdown links, bare URLs, entities and list bullets."""
    if not text:
        return ""

    clean = _HTML_TAG_RE.sub(" ", text)
    clean = _MARKDOWN_LINK_RE.sub(r"\1", clean)
    clean = _BARE_URL_RE.sub("", clean)
    clean = _NUMERIC_ENTITY_RE.sub("", clean)
    clean = _NAMED_ENTITY_RE.sub(" ", clean)
    clean = _BULLET_RE.sub("", clean)
    clean = _WHITESPACE_RE.sub(" ", clean)
    return clean.strip()


def clean_title(title: Optional[str]) -> str:
    return clean_text((title or "").replace("_", " "))


def clean_extract(text: Optional[str], max_words: int = 500) -> str:
    """
    Tidy plain-text intros while keeping paragraph breaks.

    Long bodies are cut near `max_words`, at a sentence end when one falls in
    the last 30% of the kept text, otherwise with a trailing ellipsis.
    """
    if not text:
        return ""

    cleaned = text.replace("\r\n", "\n")
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    cleaned = re.sub(r"[ \t]+", " ", cleaned).strip()

    words = cleaned.split()
    if len(words) > max_words:
        truncated = " ".join(words[:max_words])
        last_period = truncated.rfind(".")
        if last_period > len(truncated) * 0.7:
            cleaned = truncated[: last_period + 1]
        else:
            cleaned = truncated + "..."

    return cleaned


def cap_length(text: str, max_chars: int) -> str:
    """Cut at the last word boundary before `max_chars`."""
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars]
    space = cut.rfind(" ")
    if space > max_chars // 2:
        cut = cut[:space]
    return cut.rstrip() + "..."


def extract_summary(text: Optional[str]) -> str:
    """
    First one or two sentences.

    Two sentences when they fit in ~200 characters, else the first alone;
    text without sentence punctuation is truncated to ~150 characters.
    """
    if not text:
        return ""

    sentences = [s.strip() for s in _SENTENCE_RE.findall(text) if s.strip()]
    if sentences:
        summary = " ".join(sentences[:2])
        if len(summary) > SUMMARY_MAX_CHARS:
            return sentences[0]
        return summary

    text = text.strip()
    if len(text) > SUMMARY_FALLBACK_CHARS:
        return text[:SUMMARY_FALLBACK_CHARS].strip() + "..."
    return text


def is_sales_page(title: Optional[str], text: Optional[str]) -> bool:
    """True when title+body read like a shop or product page."""
    combined = f"{title or ''} {text or ''}"
    return any(pattern.search(combined) for pattern in SALES_PATTERNS)


def is_landing_page(text: Optional[str]) -> bool:
    """True when the body is mostly navigation links."""
    if not text:
        return False

    link_count = len(_MARKDOWN_LINK_RE.findall(text))
    word_count = max(len(text.split()), 1)

    if link_count > LANDING_MIN_LINKS and link_count / (word_count / 10) > LANDING_LINK_RATIO:
        return True

    return any(pattern.search(text) for pattern in NAVIGATION_PATTERNS)


def quality_rejection(title: Optional[str], text: Optional[str]) -> Optional[str]:
    """Reason to drop a candidate ("sales_page" / "landing_page"), or None."""
    if is_sales_page(title, text):
        return "sales_page"
    if is_landing_page(text):
        return "landing_page"
    return None


def parse_date(value) -> Optional[datetime]:
    """
    Parse RFC 822, ISO 8601 or epoch-millisecond timestamps into aware UTC.
    """
    if value is None or value == "":
        return None

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if not isinstance(value, str):
        return None

    parsed: Optional[datetime] = None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        parsed = None

    if parsed is None:
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            try:
                parsed = datetime.fromisoformat(value.strip()[:19])
            except ValueError:
                return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def extract_domain(url: str) -> str:
    """Hostname without a leading www., or "web" when unparseable."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        host = None
    if not host:
        return "web"
    return host.removeprefix("www.")


def sanitize_for_id(text: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "_", text).lower()


def make_article_id(prefix: str, *parts: str) -> str:
    """Source-prefixed id that is stable for the same inputs."""
    digest = hashlib.md5("|".join(parts).encode()).hexdigest()[:12]
    return f"{prefix}_{digest}"


def as_text(value: Any) -> str:
    """Reader/search JSON is loose; anything that is not a string counts as missing."""
    if isinstance(value, str):
        return value.strip()
    return ""
