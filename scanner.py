"""
Medical report scanner: text extraction from uploads, remote summarization
through the research pipeline, and a local sentence-splitting fallback.
"""
import re
from dataclasses import dataclass
from typing import Iterable, Iterator, List

from loguru import logger

from errors import ValidationError
from ocr_utils import extract_text_from_image
from pdf_utils import extract_text_from_pdf
from research_pipeline import process_research_query
from schemas import SearchType

MIN_SCAN_CHARS = 20
MIN_EXTRACTED_CHARS = 10
FALLBACK_TITLE = "Medical Report Summary"
NO_TEXT_ERROR = "No text extracted"

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".tif", ".tiff")

_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")


@dataclass
class UploadedDocument:
    file_name: str
    content: bytes
    content_type: str = ""


def split_sentences(text: str) -> List[str]:
    return [s for s in _SENTENCE_BREAK.split(text.strip()) if s.strip()]


def simple_summarize(text: str) -> dict:
    """Local fallback: first three sentences as summary, the next five as findings."""
    sentences = split_sentences(text)
    summary = " ".join(sentences[:3])
    return {
        "title": FALLBACK_TITLE,
        "summary": summary or text[:200],
        "key_findings": sentences[3:8],
    }


def detect_kind(file_name: str, content_type: str = "") -> str:
    name = (file_name or "").lower()
    content_type = (content_type or "").lower()

    if content_type == "application/pdf" or name.endswith(".pdf"):
        return "pdf"
    if content_type.startswith("image/") or name.endswith(IMAGE_EXTENSIONS):
        return "image"
    return "text"


def read_plain_text(content: bytes) -> str:
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError:
        return ""


def extract_text(document: UploadedDocument) -> str:
    kind = detect_kind(document.file_name, document.content_type)
    logger.debug(f"Extracting {document.file_name} as {kind}")

    if kind == "pdf":
        return extract_text_from_pdf(document.content)
    if kind == "image":
        return extract_text_from_image(document.content)
    return read_plain_text(document.content)


def summarize(text: str, default_title: str = FALLBACK_TITLE) -> tuple:
    """
    Try the remote summarizer once; on any failure use simple_summarize.

    Returns (result, fallback_used).
    """
    try:
        data = process_research_query(None, text, SearchType.MEDICAL_REPORT.value, [])
    except Exception as e:
        logger.warning(f"Server summarization failed, using local summarizer: {e}")
        return simple_summarize(text), True

    return {
        "title": data.get("title") or default_title,
        "summary": data.get("summary") or "",
        "key_findings": data.get("key_findings") or [],
    }, False


def scan_text(text: str) -> dict:
    """Scan pasted report text."""
    if not text or len(text.strip()) < MIN_SCAN_CHARS:
        raise ValidationError(f"Please paste a medical report (min {MIN_SCAN_CHARS} chars)")

    result, fallback_used = summarize(text)
    return {"file_name": "pasted-text", "result": result, "fallback_used": fallback_used}


def scan_document(document: UploadedDocument) -> dict:
    entry = {"file_name": document.file_name, "result": None, "fallback_used": False}

    try:
        extracted = extract_text(document)
        if not extracted or len(extracted.strip()) < MIN_EXTRACTED_CHARS:
            entry["error"] = NO_TEXT_ERROR
            return entry

        result, fallback_used = summarize(extracted, default_title=f"Summary: {document.file_name}")
    except Exception as e:
        logger.error(f"File process error for {document.file_name}: {e}")
        entry["error"] = str(e)
        return entry

    entry["result"] = result
    entry["fallback_used"] = fallback_used
    return entry


def scan_documents(documents: Iterable[UploadedDocument]) -> Iterator[dict]:
    """Scan files one at a time, yielding each entry as soon as it is ready."""
    count = 0
    for document in documents:
        count += 1
        yield scan_document(document)
    logger.info(f"Scan complete: {count} file(s) processed")
