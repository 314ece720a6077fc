"""
Environment configuration for the SOF laytime service.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from .utils.confidence_filter import DEFAULT_CONFIDENCE_FLOOR

logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000"


@dataclass
class Settings:
    ocr_endpoint: Optional[str] = None
    ocr_timeout: float = 60.0
    confidence_floor: float = DEFAULT_CONFIDENCE_FLOOR
    mapping_file: Optional[str] = None
    enable_local_text: bool = False
    cors_origins: List[str] = field(default_factory=lambda: DEFAULT_CORS_ORIGINS.split(","))
    log_level: str = "INFO"


def parse_confidence_floor(value, default: float = DEFAULT_CONFIDENCE_FLOOR) -> float:
    """Read a confidence floor, falling back to the default when it is unusable."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    try:
        floor = float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid confidence floor %r, using %s", value, default)
        return default
    if not 0.0 <= floor <= 1.0:
        logger.warning("Confidence floor %s outside [0, 1], using %s", floor, default)
        return default
    return floor


def ocr_extract_url(endpoint: Optional[str]) -> Optional[str]:
    if not endpoint:
        return None
    endpoint = endpoint.rstrip("/")
    return endpoint if "/extract" in endpoint else f"{endpoint}/extract"


def load_settings() -> Settings:
    load_dotenv()

    try:
        timeout = float(os.getenv("SOF_OCR_TIMEOUT", "60"))
    except ValueError:
        logger.warning("SOF_OCR_TIMEOUT is not a number, using 60 seconds")
        timeout = 60.0

    origins = os.getenv("SOF_CORS_ORIGINS", DEFAULT_CORS_ORIGINS)
    settings = Settings(
        ocr_endpoint=ocr_extract_url(os.getenv("SOF_OCR_ENDPOINT")),
        ocr_timeout=timeout,
        confidence_floor=parse_confidence_floor(os.getenv("SOF_CONFIDENCE_FLOOR")),
        mapping_file=os.getenv("SOF_MAPPING_FILE") or None,
        enable_local_text=os.getenv("SOF_ENABLE_LOCAL_TEXT", "false").lower() == "true",
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )

    if not settings.ocr_endpoint:
        logger.warning("SOF_OCR_ENDPOINT not found. OCR extraction will not be available.")
    return settings
