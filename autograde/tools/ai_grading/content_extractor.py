"""Turn raw submissions (online text and uploaded files) into plain text."""

import html
import logging
from pathlib import Path
from typing import List, Optional, Protocol, Tuple

import fitz  # PyMuPDF
from html_to_markdown import convert_to_markdown
from pydantic import BaseModel, Field

from autograde.libs.text_utils import strip_tags
from .models import ExtractedContent, SubmittedFile

LOG = logging.getLogger(__name__)

TEXT_SUFFIXES = {
    '.txt', '.md', '.py', '.r', '.rmd', '.qmd', '.java', '.c', '.cpp', '.h',
    '.js', '.ts', '.sql', '.sh', '.csv', '.json', '.yaml', '.yml',
}
HTML_SUFFIXES = {'.html', '.htm'}
MAX_PDF_PAGES = 20
MAX_FILE_BYTES = 2_000_000


class Submission(BaseModel):
    """What a student handed in."""
    onlinetext: str = ""
    onlinetext_format: str = Field(default="html", description="html or plain")
    files: List[Path] = Field(default_factory=list)


class ContentExtractor(Protocol):
    def extract(self, submission: Submission) -> ExtractedContent:
        ...


def convert_html_to_markdown(html_content: str) -> str:
    """Convert HTML content to Markdown."""
    return convert_to_markdown(html_content)


class BasicContentExtractor:
    """Extract text from online text and common file types."""

    def __init__(self, max_pdf_pages: int = MAX_PDF_PAGES):
        self.max_pdf_pages = max_pdf_pages

    def extract(self, submission: Submission) -> ExtractedContent:
        parts = []
        if submission.onlinetext.strip():
            if submission.onlinetext_format == 'html':
                parts.append(convert_html_to_markdown(submission.onlinetext).strip())
            else:
                parts.append(submission.onlinetext.strip())

        files = []
        for path in submission.files:
            text, error = self._read(path)
            files.append(SubmittedFile(name=path.name, error=error))
            if text:
                parts.append(f"--- {path.name} ---\n{text}")

        return ExtractedContent(text="\n\n".join(p for p in parts if p), files=files)

    def _read(self, path: Path) -> Tuple[str, Optional[str]]:
        suffix = path.suffix.lower()
        try:
            if path.stat().st_size > MAX_FILE_BYTES:
                return "", "file too large"
            if suffix in TEXT_SUFFIXES:
                return path.read_text(encoding='utf-8', errors='ignore').strip(), None
            if suffix in HTML_SUFFIXES:
                raw = path.read_text(encoding='utf-8', errors='ignore')
                return convert_html_to_markdown(raw).strip(), None
            if suffix == '.pdf':
                return self._read_pdf(path)
        except OSError as e:
            LOG.warning(f"Could not read submission file {path}: {e}")
            return "", f"could not read file: {e}"
        return "", f"unsupported file type {suffix or '(none)'}"

    def _read_pdf(self, path: Path) -> Tuple[str, Optional[str]]:
        try:
            doc = fitz.open(path)
            page_texts = []
            for page_idx in range(min(self.max_pdf_pages, doc.page_count)):
                page = doc.load_page(page_idx)
                page_texts.append(page.get_text("text"))
        except Exception as exc:  # pylint: disable=broad-except
            LOG.warning("PDF extraction failed for %s: %s", path, exc)
            return "", f"pdf extraction failed: {exc}"

        text = "\n".join(t.strip() for t in page_texts if t.strip())
        if not text:
            return "", "no extractable text (scanned pdf?)"
        return text, None


def html_to_plain_text(content: str) -> str:
    """Tag-stripped text of an HTML fragment (used for grading instructions)."""
    return html.unescape(strip_tags(content or "")).strip()
