"""
Batch normalization of SOF extractions.

Walks a directory, normalizes every raw OCR payload (*.json) and every document
(*.pdf, *.docx, *.txt), and writes one result JSON per input file.
"""

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from .config import Settings, load_settings, parse_confidence_floor
from .errors import PayloadError
from .models import NormalizeResult
from .sof_pipeline import ingest_document, normalize
from .utils.canonical_mapper import CanonicalEventMapper, build_mapper
from .utils.text_layer import SUPPORTED_EXTENSIONS

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR = Path("results")


def collect_inputs(input_dir: Path) -> List[Path]:
    """Payload and document files directly inside ``input_dir``, sorted by name."""
    wanted = SUPPORTED_EXTENSIONS | {".json"}
    return sorted(p for p in input_dir.iterdir() if p.is_file() and p.suffix.lower() in wanted)


def process_file(
    path: Path,
    settings: Settings,
    mapper: CanonicalEventMapper,
    confidence_floor: float,
) -> NormalizeResult:
    if path.suffix.lower() == ".json":
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
        return normalize(payload, confidence_floor, mapper)

    if not settings.ocr_endpoint:
        settings = replace(settings, enable_local_text=True)
    return ingest_document(path.name, path.read_bytes(), settings, mapper=mapper, confidence_floor=confidence_floor)


def _summary_line(path: Path, result: NormalizeResult) -> str:
    status = f"error: {result.error}" if result.error else "ok"
    return (
        f"{path.name}: {len(result.events)} events, "
        f"{len(result.filtered_out)} filtered out, "
        f"{len(result.unmapped_labels)} unmapped labels ({status})"
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Normalize SOF OCR payloads and documents in a directory",
    )
    parser.add_argument("input_dir", type=Path, help="Directory holding *.json payloads or SOF documents")
    parser.add_argument(
        "-o", "--output", type=Path, default=DEFAULT_OUTPUT_DIR,
        help=f"Directory for result files (default: {DEFAULT_OUTPUT_DIR})"
    )
    parser.add_argument(
        "--confidence-floor", type=str, default=None,
        help="Events scored below this are filtered out (default: SOF_CONFIDENCE_FLOOR or 0.35)"
    )
    args = parser.parse_args(argv)

    settings = load_settings()
    logging.basicConfig(level=settings.log_level)

    if not args.input_dir.is_dir():
        print(f"ERROR: input directory not found: {args.input_dir}")
        return 1

    floor = parse_confidence_floor(args.confidence_floor, settings.confidence_floor)
    mapper = build_mapper(settings.mapping_file)
    args.output.mkdir(parents=True, exist_ok=True)

    inputs = collect_inputs(args.input_dir)
    if not inputs:
        print(f"No payloads or documents found in {args.input_dir}")
        return 0

    failures = 0
    for path in inputs:
        try:
            result = process_file(path, settings, mapper, floor)
        except (PayloadError, json.JSONDecodeError) as e:
            failures += 1
            logger.warning("Skipping %s: %s", path.name, e)
            print(f"{path.name}: skipped ({e})")
            continue

        out_path = args.output / f"{path.stem}.json"
        with open(out_path, "w", encoding="utf-8") as f:
            json.dump(result.to_dict(), f, indent=2)
        print(_summary_line(path, result))

    print(f"Processed {len(inputs) - failures}/{len(inputs)} files into {args.output}")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
