"""
Laytime statement rendering: JSON, HTML and tabular (CSV) forms.
"""

import html
import logging
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from .laytime import LaytimeSnapshot
from .laytime_engine import EngineResult

logger = logging.getLogger(__name__)

STATEMENT_COLUMNS = [
    "cargo_id", "cargo_name", "port_call_id", "port_name", "activity",
    "allowed_minutes", "used_minutes", "deductions_minutes", "additions_minutes",
    "demurrage_minutes", "despatch_minutes",
]


def _by_id(records: Sequence[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    return {str(r.get("id")): r for r in records or [] if isinstance(r, dict)}


def build_statement(
    result: EngineResult,
    port_calls: Sequence[Dict[str, Any]],
    cargoes: Sequence[Dict[str, Any]],
    method: str,
    calculation_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Assemble the statement JSON from an engine result.

    The vessel is reported as once on demurrage when there is time on demurrage
    and total used time exceeds total allowed time.
    """
    totals = result.totals
    ports = _by_id(port_calls)
    cargo_map = _by_id(cargoes)

    lines = []
    for row in result.cargo_port_rows:
        lines.append({
            "cargo": cargo_map.get(row.cargo_id, {"id": row.cargo_id}),
            "port": ports.get(row.port_call_id, {"id": row.port_call_id}),
            "allowedMinutes": row.laytime_allowed_minutes,
            "usedMinutes": row.laytime_used_minutes,
            "deductionsMinutes": row.deductions_minutes,
            "additionsMinutes": row.additions_minutes,
            "demurrageMinutes": row.time_on_demurrage_minutes,
            "despatchMinutes": row.time_on_despatch_minutes,
        })

    return {
        "header": {
            "calculationId": calculation_id,
            "method": method,
            "totals": {
                "allowedMinutes": totals.time_allowed_minutes,
                "usedMinutes": totals.time_used_minutes,
                "demurrageMinutes": totals.time_on_demurrage_minutes,
                "despatchMinutes": totals.time_on_despatch_minutes,
                "demurrageAmount": totals.demurrage_amount,
                "despatchAmount": totals.despatch_amount,
                "onceOnDemurrage": totals.time_on_demurrage_minutes > 0
                and totals.time_used_minutes > totals.time_allowed_minutes,
            },
        },
        "cargoPortRows": lines,
    }


def statement_frame(statement: Dict[str, Any]) -> pd.DataFrame:
    """One row per (cargo, port call) line of the statement."""
    records = []
    for line in statement.get("cargoPortRows", []):
        cargo, port = line.get("cargo", {}), line.get("port", {})
        records.append({
            "cargo_id": cargo.get("id"),
            "cargo_name": cargo.get("cargo_name"),
            "port_call_id": port.get("id"),
            "port_name": port.get("port_name"),
            "activity": port.get("activity"),
            "allowed_minutes": line.get("allowedMinutes"),
            "used_minutes": line.get("usedMinutes"),
            "deductions_minutes": line.get("deductionsMinutes"),
            "additions_minutes": line.get("additionsMinutes"),
            "demurrage_minutes": line.get("demurrageMinutes"),
            "despatch_minutes": line.get("despatchMinutes"),
        })
    return pd.DataFrame(records, columns=STATEMENT_COLUMNS)


def breakdown_frame(snapshot: LaytimeSnapshot) -> pd.DataFrame:
    """Per-port breakdown of a claim snapshot, in hours."""
    df = pd.DataFrame([row.to_dict() for row in snapshot.breakdown])
    if df.empty:
        return pd.DataFrame(
            columns=["id", "label", "activity", "allowed", "base", "deductions", "used", "overUnder", "note"]
        )
    return df


def statement_csv(statement: Dict[str, Any]) -> str:
    return statement_frame(statement).to_csv(index=False)


def _fmt(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:,.2f}"
    return html.escape("" if value is None else str(value))


def statement_html(statement: Dict[str, Any]) -> str:
    """Render a plain HTML laytime statement. All text values are escaped."""
    header = statement.get("header", {})
    totals = header.get("totals", {})
    lines: List[str] = []
    for line in statement.get("cargoPortRows", []):
        cargo, port = line.get("cargo", {}), line.get("port", {})
        cargo_label = cargo.get("cargo_name") or cargo.get("id")
        port_label = port.get("port_name") or port.get("id")
        lines.append(
            f"<li>{_fmt(cargo_label)} @ {_fmt(port_label)}: "
            f"Allowed {_fmt(line.get('allowedMinutes'))}m, Used {_fmt(line.get('usedMinutes'))}m, "
            f"Dem {_fmt(line.get('demurrageMinutes'))}m, Desp {_fmt(line.get('despatchMinutes'))}m</li>"
        )

    return (
        "<html><body>\n"
        "<h2>Laytime Statement</h2>\n"
        f"<p>Calc: {_fmt(header.get('calculationId'))}</p>\n"
        f"<p>Method: {_fmt(header.get('method'))}</p>\n"
        "<h3>Totals</h3>\n<ul>\n"
        f"<li>Allowed: {_fmt(totals.get('allowedMinutes'))} min</li>\n"
        f"<li>Used: {_fmt(totals.get('usedMinutes'))} min</li>\n"
        f"<li>Demurrage: {_fmt(totals.get('demurrageMinutes'))} min ({_fmt(totals.get('demurrageAmount'))})</li>\n"
        f"<li>Despatch: {_fmt(totals.get('despatchMinutes'))} min ({_fmt(totals.get('despatchAmount'))})</li>\n"
        f"<li>Once on demurrage: {'yes' if totals.get('onceOnDemurrage') else 'no'}</li>\n"
        "</ul>\n<h3>Lines</h3>\n<ul>\n"
        + "\n".join(lines)
        + "\n</ul>\n</body></html>\n"
    )
