import re

_SCRIPT_BLOCK = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_JS_SCHEME = re.compile(r"javascript:", re.IGNORECASE)
_INLINE_HANDLER = re.compile(r"\bon\w+\s*=", re.IGNORECASE)
_TAG = re.compile(r"<[^>]*>")
_WHITESPACE = re.compile(r"\s+")
_WORD_START = re.compile(r"(^|\s)(\w)")

_CAPITALIZED_PHRASE = r"([A-Z][\w&'.-]*(?:\s+(?:&\s+)?[A-Z][\w&'.-]*)*)"
VENDOR_PATTERNS = (re.compile(r"(?:\b(?:from|at)\b|@)\s*" + _CAPITALIZED_PHRASE),)
LOCATION_PATTERNS = (
    re.compile(r"\bin\s+" + _CAPITALIZED_PHRASE),
    re.compile(r",\s*" + _CAPITALIZED_PHRASE + r"\s*$"),
)


def sanitize(text: str) -> str:
    """Remove markup and script-like fragments."""
    cleaned = _SCRIPT_BLOCK.sub("", text)
    cleaned = _JS_SCHEME.sub("", cleaned)
    cleaned = _INLINE_HANDLER.sub("", cleaned)
    cleaned = _TAG.sub("", cleaned)
    return cleaned


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def clean_description(description: str) -> str:
    cleaned = collapse_whitespace(sanitize(description))
    return _WORD_START.sub(lambda match: match.group(1) + match.group(2).upper(), cleaned)


def normalize_description(description: str) -> str:
    """Canonical form used for cache keys and keyword matching."""
    return collapse_whitespace(description).lower()


def _first_match(patterns: tuple[re.Pattern[str], ...], text: str) -> str | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match and len(match.group(1).strip()) > 2:
            return match.group(1).strip()
    return None


def extract_vendor(description: str) -> str | None:
    return _first_match(VENDOR_PATTERNS, sanitize(description))


def extract_location(description: str) -> str | None:
    return _first_match(LOCATION_PATTERNS, sanitize(description))
