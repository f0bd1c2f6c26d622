import fitz  # PyMuPDF
from loguru import logger


def extract_text_from_pdf(pdf_bytes: bytes) -> str:
    """Concatenate the text of every page; empty string if the PDF can't be read."""
    text = ""

    try:
        with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
            for page in doc:
                text += page.get_text() + "\n\n"
    except Exception as e:
        logger.warning(f"PDF extraction error: {e}")
        return ""

    return text
