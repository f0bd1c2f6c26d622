"""
Environment configuration and logging setup for Medico Analyzer
"""
import os
import sys

from loguru import logger

DEFAULT_GATEWAY_URL = "https://ai.gateway.lovable.dev/v1/chat/completions"
DEFAULT_MODEL_NAME = "google/gemini-2.5-flash"
DEFAULT_DB_PATH = "medico_analyzer.db"

# Chat-completion parameters used for every research query
TEMPERATURE = 0.7
MAX_TOKENS = 2000


def get_gateway_url() -> str:
    return os.getenv("AI_GATEWAY_URL", DEFAULT_GATEWAY_URL)


def get_gateway_api_key():
    return os.getenv("AI_GATEWAY_API_KEY")


def get_model_name() -> str:
    return os.getenv("AI_GATEWAY_MODEL", DEFAULT_MODEL_NAME)


def get_db_path() -> str:
    return os.getenv("MEDICO_DB_PATH", DEFAULT_DB_PATH)


def get_tesseract_cmd():
    return os.getenv("TESSERACT_CMD")


def setup_logging(level: str | None = None):
    """Replace loguru's default sink with a single stderr sink."""
    level = level or os.getenv("LOG_LEVEL", "INFO")
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}",
    )
