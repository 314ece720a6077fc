"""OCR service client: posts a SOF document and returns its raw line items."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

NOT_CONFIGURED = "Service not configured"
INVALID_RESPONSE = "Invalid response from SOF OCR service"


@dataclass
class OcrResult:
    events: List[Dict[str, Any]] = field(default_factory=list)
    summary: Optional[Dict[str, Any]] = None
    header: Optional[Dict[str, Any]] = None
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "events": self.events,
            "summary": self.summary,
            "header": self.header,
            "warnings": self.warnings,
        }


class OcrClient:
    """Client for the external OCR extraction service.

    Failures never raise: they come back as an OcrResult with no events and
    an error string.
    """

    def __init__(
        self,
        endpoint: Optional[str],
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.endpoint)

    def extract(self, filename: str, content: bytes) -> OcrResult:
        """Send a document to the OCR service (sync)."""
        if not self.configured:
            return OcrResult(warnings=["SOF_OCR_ENDPOINT is not configured"], error=NOT_CONFIGURED)
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.endpoint, files={"file": (filename, content)})
                response.raise_for_status()
                return self._parse(response)
        except httpx.HTTPStatusError as e:
            logger.error("OCR service HTTP error: %s", e)
            return OcrResult(error=self._status_error(e.response))
        except httpx.RequestError as e:
            logger.error("OCR service request error: %s", e)
            return OcrResult(error=str(e) or "Extraction failed")

    @staticmethod
    def _status_error(response: httpx.Response) -> str:
        return f"Service error ({response.status_code}): {response.text or response.reason_phrase}"

    @staticmethod
    def _parse(response: httpx.Response) -> OcrResult:
        try:
            body = response.json()
        except ValueError:
            return OcrResult(error=INVALID_RESPONSE)
        if not isinstance(body, dict) or not isinstance(body.get("events"), list):
            return OcrResult(error=INVALID_RESPONSE)
        return OcrResult(
            events=body["events"],
            summary=body.get("summary") if isinstance(body.get("summary"), dict) else None,
            header=body.get("header") if isinstance(body.get("header"), dict) else None,
            warnings=[str(w) for w in body.get("warnings") or []],
            error=body.get("error"),
        )
