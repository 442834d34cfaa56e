"""Text and URL helpers for page capture."""

import re
from typing import List
from urllib.parse import urlparse

IGNORED_URL_PREFIXES = (
    'chrome://',
    'chrome-extension://',
    'about:',
    'edge://',
    'brave://',
    'data:',
    'javascript:',
)


def sanitize_text(text: str) -> str:
    """Collapse all whitespace runs to single spaces and trim."""
    return re.sub(r'\s+', ' ', text).strip()


def truncate_text(text: str, max_length: int) -> str:
    """Truncate to ``max_length`` characters, ending with '...' when cut."""
    if len(text) <= max_length:
        return text
    return text[:max(max_length - 3, 0)] + '...'


def extract_domain(url: str) -> str:
    """Hostname of a URL, or '' when it cannot be parsed."""
    try:
        return urlparse(url).hostname or ''
    except ValueError:
        return ''


def should_ignore_url(url: str) -> bool:
    """Browser-internal and script URLs are never captured."""
    return url.startswith(IGNORED_URL_PREFIXES)


def is_valid_text(text: str, min_length: int = 100) -> bool:
    """Whether sanitized text is long enough to be worth capturing."""
    return len(sanitize_text(text)) >= min_length


def chunk_text(text: str, max_chunk_size: int = 10000) -> List[str]:
    """Split text on whitespace into chunks of at most ``max_chunk_size`` chars.

    A single word longer than the limit becomes its own chunk.
    """
    chunks: List[str] = []
    current = ''

    for word in text.split():
        if not current:
            current = word
        elif len(current) + len(word) + 1 <= max_chunk_size:
            current = f"{current} {word}"
        else:
            chunks.append(current)
            current = word

    if current:
        chunks.append(current)
    return chunks
