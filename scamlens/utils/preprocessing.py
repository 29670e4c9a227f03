import re


# "mailto:", "javascript:" ... but not "example.com:8080"
_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*:(?!\d)", re.IGNORECASE)


def normalize_text(text: str) -> str:
    text = text or ""
    text = text.strip()
    text = re.sub(r"\s+", " ", text)
    return text


def truncate(text: str, max_chars: int) -> str:
    """Cut text to at most max_chars characters, marking the cut with an ellipsis."""
    text = text or ""
    if max_chars <= 0:
        return ""
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 1].rstrip() + "…"


def normalize_url(url: str) -> str:
    url = (url or "").strip()
    if url and "://" not in url and not _SCHEME_RE.match(url):
        url = "http://" + url
    return url
