"""
SOF Laytime API
FastAPI application for normalizing Statement of Facts extractions and
computing laytime, demurrage and despatch.
"""

import logging
from typing import Any, Dict, Optional

import uvicorn
from fastapi import Body, Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, Response

from .config import Settings, load_settings, parse_confidence_floor
from .errors import ConfigurationError, PayloadError
from .laytime import snapshot_from_payload
from .laytime_engine import calculate_from_payload
from .sof_pipeline import ingest_document, normalize
from .statement import build_statement, statement_csv, statement_html
from .utils.canonical_mapper import CanonicalEventMapper, build_mapper
from .utils.ocr_client import NOT_CONFIGURED, OcrClient

settings = load_settings()

logger = logging.getLogger(__name__)
logging.basicConfig(level=settings.log_level)

mapper = build_mapper(settings.mapping_file)

app = FastAPI(
    title="SOF Laytime API",
    description="Statement of Facts normalization and laytime calculation",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

STATEMENT_FORMATS = ("json", "html", "csv")


# --------------------------
# Dependencies
# --------------------------
def get_settings() -> Settings:
    return settings


def get_mapper() -> CanonicalEventMapper:
    return mapper


def get_ocr_client(current: Settings = Depends(get_settings)) -> OcrClient:
    return OcrClient(current.ocr_endpoint, current.ocr_timeout)


def _bad_request(e: Exception) -> HTTPException:
    logger.warning("Rejected request: %s", e)
    return HTTPException(status_code=400, detail=str(e))


# --------------------------
# Endpoints
# --------------------------
@app.get("/")
async def root():
    """Health check endpoint"""
    return {"message": "SOF Laytime API is running", "status": "healthy"}


@app.post("/api/sof-extract")
async def sof_extract(
    file: UploadFile = File(...),
    confidence_floor: Optional[str] = Form(None),
    current: Settings = Depends(get_settings),
    client: OcrClient = Depends(get_ocr_client),
    active_mapper: CanonicalEventMapper = Depends(get_mapper),
):
    """Send an SOF document to the OCR service and normalize what comes back."""
    content = await file.read()
    floor = parse_confidence_floor(confidence_floor, current.confidence_floor)
    result = await run_in_threadpool(
        ingest_document, file.filename or "upload", content, current, client, active_mapper, floor
    )

    if result.error and not result.events and not result.filtered_out:
        status = 500 if result.error == NOT_CONFIGURED else 502
        logger.error("SOF extraction failed for %s: %s", file.filename, result.error)
        raise HTTPException(status_code=status, detail=result.error)
    return result.to_dict()


@app.post("/api/sof/normalize")
async def sof_normalize(
    payload: Dict[str, Any] = Body(...),
    confidence_floor: Optional[str] = None,
    current: Settings = Depends(get_settings),
    active_mapper: CanonicalEventMapper = Depends(get_mapper),
):
    """Normalize an OCR payload that was extracted elsewhere."""
    floor = parse_confidence_floor(confidence_floor, current.confidence_floor)
    try:
        result = normalize(payload, floor, active_mapper)
    except PayloadError as e:
        raise _bad_request(e)
    return result.to_dict()


@app.get("/api/sof-mapping")
async def sof_mapping(active_mapper: CanonicalEventMapper = Depends(get_mapper)):
    return active_mapper.to_dict()


@app.post("/api/laytime/snapshot")
async def laytime_snapshot(payload: Dict[str, Any] = Body(...)):
    """Laytime snapshot of one claim, with reversible pooling when siblings are given."""
    try:
        snapshot = snapshot_from_payload(payload)
    except (PayloadError, ConfigurationError) as e:
        raise _bad_request(e)
    return snapshot.to_dict()


@app.post("/api/laytime/calculate")
async def laytime_calculate(payload: Dict[str, Any] = Body(...)):
    """Cargo x port laytime matrix for a voyage."""
    try:
        result = calculate_from_payload(payload)
    except (PayloadError, ConfigurationError) as e:
        raise _bad_request(e)
    return result.to_dict()


@app.post("/api/laytime/statement")
async def laytime_statement(payload: Dict[str, Any] = Body(...), export_type: str = "json"):
    """Laytime statement as JSON, HTML or CSV."""
    export_format = export_type.lower()
    if export_format not in STATEMENT_FORMATS:
        raise HTTPException(status_code=400, detail="Invalid export type. Use 'json', 'html' or 'csv'")
    try:
        result = calculate_from_payload(payload)
    except (PayloadError, ConfigurationError) as e:
        raise _bad_request(e)

    statement = build_statement(
        result,
        port_calls=payload["port_calls"],
        cargoes=payload["cargoes"],
        method=(payload.get("method") or "STANDARD").upper(),
        calculation_id=payload.get("calculation_id"),
    )
    if export_format == "html":
        return HTMLResponse(statement_html(statement))
    if export_format == "csv":
        return Response(
            content=statement_csv(statement),
            media_type="text/csv",
            headers={"Content-Disposition": "attachment; filename=laytime_statement.csv"},
        )
    return statement


def main():
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
