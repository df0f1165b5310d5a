"""Small text helpers shared by the grading tools."""

import html
import re

_TAG_RE = re.compile(r'<[^>]*>')
_DROP_BLOCKS_RE = re.compile(
    r'<(script|style|noscript|iframe)[^>]*>.*?</\1>', re.IGNORECASE | re.DOTALL
)


def strip_tags(content: str) -> str:
    """Remove HTML tags, dropping script/style blocks along with their content."""
    content = _DROP_BLOCKS_RE.sub('', content or '')
    return _TAG_RE.sub('', content)


def clean_label(text: str) -> str:
    """Strip markup and collapse whitespace for display labels."""
    text = strip_tags(str(text or '').strip())
    return re.sub(r'\s+', ' ', text).strip()


def normalize_name(text: str) -> str:
    """
    Reduce a label to lower-case alphanumerics for stable comparisons.

    "Clarity (10 pts) ✨" -> "clarity10pts"
    """
    text = clean_label(text)
    if not text:
        return ''
    return re.sub(r'[^a-z0-9]+', '', text.lower())


def normalize_plain_text(text: str) -> str:
    """Decode entities, strip markup, lower-case and reduce to space separated alphanumerics."""
    text = html.unescape(text or '')
    text = strip_tags(text)
    text = text.lower()
    text = re.sub(r'[^a-z0-9]+', ' ', text)
    return re.sub(r'\s+', ' ', text).strip()
