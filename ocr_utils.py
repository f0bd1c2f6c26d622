"""
OCR utilities for pulling text out of scanned report images
"""
import io
import shutil

import cv2
import numpy as np
import pytesseract
from loguru import logger
from PIL import Image

import config


def find_tesseract_path():
    """Locate the tesseract binary: explicit override first, then PATH and the usual install spots."""
    possible_paths = [
        config.get_tesseract_cmd(),
        shutil.which("tesseract"),
        "/usr/bin/tesseract",
        "/usr/local/bin/tesseract",
        r"C:\Program Files\Tesseract-OCR\tesseract.exe",
    ]

    for path in possible_paths:
        if path and shutil.which(path):
            return path
    return None


def configure_tesseract():
    path = find_tesseract_path()
    if path:
        pytesseract.pytesseract.tesseract_cmd = path
        logger.info(f"Tesseract found at: {path}")
    else:
        logger.warning("Tesseract OCR engine not found, image scans will extract no text")
    return path


def preprocess_image(img: Image.Image) -> Image.Image:
    """Grayscale + Otsu binarisation, inverting dark-background scans first."""
    gray = cv2.cvtColor(np.array(img.convert("RGB")), cv2.COLOR_RGB2GRAY)

    if np.mean(gray) < 128:
        gray = cv2.bitwise_not(gray)

    denoised = cv2.medianBlur(gray, 3)
    _, binary = cv2.threshold(denoised, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    return Image.fromarray(binary)


def extract_text_from_image(image_bytes: bytes, use_preprocessing: bool = True) -> str:
    """Run a full-image OCR pass; empty string on any failure."""
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            img.load()
            target = preprocess_image(img) if use_preprocessing else img.convert("L")
            text = pytesseract.image_to_string(target)
    except pytesseract.TesseractNotFoundError:
        logger.warning("OCR error: tesseract is not installed or not in PATH")
        return ""
    except Exception as e:
        logger.warning(f"OCR extraction error: {type(e).__name__}: {e}")
        return ""

    text = text.strip()
    logger.debug(f"Extracted {len(text)} characters, {len(text.split())} words")
    return text
