"""
Canonical Event Mapper Module
Classifies SOF event labels into the maritime event taxonomy.

Rules are tried in declared order and the first rule with any matching
pattern wins. The confidence returned is the rule's declared value.
"""

import json
import logging
import re
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CanonicalMappingRule:
    canonical: str
    patterns: Tuple[re.Pattern, ...]
    confidence: float

    def matches(self, label: str) -> bool:
        return any(p.search(label) for p in self.patterns)

    def to_dict(self) -> dict:
        return {
            "canonical": self.canonical,
            "keywords": [p.pattern for p in self.patterns],
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class CanonicalMatch:
    tag: Optional[str] = None
    confidence: Optional[float] = None


def _rule(canonical: str, confidence: float, *keywords: str) -> CanonicalMappingRule:
    return CanonicalMappingRule(
        canonical=canonical,
        patterns=tuple(re.compile(k, re.IGNORECASE) for k in keywords),
        confidence=confidence,
    )


DEFAULT_RULES: Tuple[CanonicalMappingRule, ...] = (
    _rule("NAV_EOSP", 0.7,
          r"\be\.?o\.?s\.?p\b", r"end of sea passage", r"arrival at pilot station",
          r"arrival at port limits", r"arrived (at|off) pilot station", r"arrived at (outer )?anchorage"),
    _rule("NAV_NOR_TENDERED", 0.7,
          r"nor tendered", r"notice of readiness tendered", r"\bn\.?o\.?r\.? presented", r"\bnor t/d", r"tendered nor"),
    _rule("NAV_NOR_ACCEPTED", 0.7,
          r"nor accepted", r"notice of readiness accepted", r"nor signed", r"\bn\.?o\.?r\.?\s*a/c"),
    _rule("NAV_ANCHOR_DROP", 0.8,
          r"dropped anchor", r"anchor(ed)?\s?(dropped|let go)", r"\banchored at\b", r"\blet go (port|stbd)?\s*anchor"),
    _rule("NAV_ANCHOR_AWEIGH", 0.8,
          r"anchor aweigh", r"heaved up anchor", r"anchor up", r"commenced heaving anchor", r"anchor clear of water"),
    _rule("NAV_PILOT_ON_ARR", 0.8,
          r"\bp\.?o\.?b\b", r"pilot on board", r"pilot boarded", r"pilot embarked", r"pilot arrival"),
    _rule("NAV_TUGS_MADE_FAST", 0.7,
          r"tugs?\s+(fast|made fast)", r"tug lines fast", r"tug connected", r"tugs? secured"),
    _rule("NAV_FIRST_LINE", 0.7, r"first line", r"1st line ashore", r"spring line ashore"),
    _rule("NAV_ALL_FAST", 0.9,
          r"all fast", r"all lines fast", r"\bmoored\b", r"berthed all fast", r"\bf\.?w\.?e\b",
          r"finished with engines", r"fast at berth", r"alongside berth"),
    _rule("OPS_GANGWAY_DOWN", 0.7, r"gangway down", r"gangway lowered", r"gangway secured", r"access ladder down"),
    _rule("AUTH_FREE_PRATIQUE", 0.7, r"free pratique", r"health clearance", r"pratique received", r"quarantine cleared"),
    _rule("AUTH_CUSTOMS_ON", 0.6,
          r"customs on ?board", r"immigration on ?board", r"authorities on ?board", r"boarding party on ?board"),
    _rule("AUTH_CLEARED_INWARD", 0.6,
          r"customs cleared", r"inward clearance", r"formalities completed", r"clearance granted"),
    _rule("PREP_HATCH_OPEN", 0.7, r"hatch(es)?\s+opened", r"hatch covers opened", r"uncovered hatches"),
    _rule("PREP_HATCH_CLOSE", 0.7, r"hatch(es)?\s+closed", r"hatch covers closed", r"covered hatches"),
    _rule("SURVEY_DRAFT_INITIAL", 0.75, r"initial draft survey", r"draft survey commenced", r"joint draft survey"),
    _rule("SURVEY_HOLD_INSP", 0.65,
          r"hold inspection", r"holds passed", r"holds failed", r"holds accepted",
          r"cleanliness inspection", r"tank inspection"),
    _rule("CARGO_OPS_START", 0.8,
          r"commenced loading", r"commenced discharging", r"start (loading|discharge)", r"cargo ops started",
          r"commenced cargo operations", r"using loader", r"loading operations commenced",
          r"cargo operations commenced", r"loading resumed from stop"),
    _rule("CARGO_OPS_STOP", 0.75,
          r"stopped loading", r"stopped discharging", r"ceased cargo", r"suspended cargo", r"cargo ops stopped",
          r"cargo operations suspended", r"loading suspended", r"discharging suspended"),
    _rule("CARGO_OPS_RESUME", 0.75,
          r"resumed loading", r"resumed discharging", r"recommenced cargo", r"restarted cargo ops",
          r"cargo operations resumed", r"loading resumed", r"discharging resumed"),
    _rule("CARGO_OPS_COMPLETE", 0.75,
          r"completed loading", r"completed discharging", r"cargo completed", r"finished cargo",
          r"loading finish", r"discharge finish"),
    _rule("DELAY_WEATHER", 0.7,
          r"\brain\b", r"bad weather", r"adverse weather", r"suspended due to rain", r"high winds",
          r"heavy swell", r"monsoon", r"precipitation"),
    _rule("DELAY_MAINTENANCE", 0.7,
          r"crane breakdown", r"gear failure", r"maintenance", r"winch problem", r"shore crane breakdown",
          r"grab repair", r"mechanical delay", r"\bbelt\b", r"\bfeeder\b"),
    _rule("DELAY_STEVEDORE", 0.65,
          r"stevedore", r"\bgangs\b", r"shift change", r"meal break", r"union meeting", r"awaiting stevedores"),
    _rule("DELAY_WAIT_CARGO", 0.65,
          r"awaiting cargo", r"no trucks", r"awaiting trucks", r"awaiting barges", r"wait cargo", r"silo empty"),
    _rule("OPS_SHIFTING_START", 0.6,
          r"commenced shifting", r"shifting berth", r"warping commenced", r"move to anchorage"),
    _rule("OPS_SHIFTING_END", 0.6,
          r"completed shifting", r"shifting finished", r"fast alongside new berth", r"all fast after shifting"),
    _rule("AUX_BUNKER_START", 0.65,
          r"bunkering started", r"commenced bunkering", r"hose connected fuel", r"taking bunkers"),
    _rule("AUX_BUNKER_STOP", 0.65,
          r"bunkering completed", r"finished bunkering", r"hose disconnected fuel", r"bunkers received"),
    _rule("AUX_BALLAST_START", 0.6,
          r"commenced de-?ballasting", r"commenced ballasting", r"start ballast ops", r"pumping ballast"),
    _rule("AUX_BALLAST_STOP", 0.6,
          r"completed de-?ballasting", r"completed ballasting", r"ballast tanks dry", r"stop ballast ops"),
    _rule("AUX_FUMIGATION", 0.6, r"fumigation", r"fumigators on ?board", r"tablets applied", r"recirculation fans on"),
    _rule("SURVEY_SAMPLING", 0.6, r"sampling commenced", r"sampling completed", r"surveyors sampling", r"samples taken"),
    _rule("SURVEY_DRAFT_FINAL", 0.75, r"final draft survey", r"draft survey completed", r"cargo figures agreed"),
    _rule("PREP_LASHING", 0.6, r"lashing", r"securing cargo", r"dunnage removal", r"unlashing"),
    _rule("PREP_HATCH_SEAL", 0.6, r"hatches sealed", r"sealing hatches", r"seals applied", r"security seals fixed"),
    _rule("NAV_DOCS_ONBOARD", 0.6,
          r"documents on ?board", r"bill of lading signed", r"paperwork completed", r"mate'?s? receipt signed"),
    _rule("NAV_PILOT_ON_DEP", 0.7, r"pilot on ?board.*departure", r"\bpob departure", r"pilot boarded for sailing"),
    _rule("NAV_CAST_OFF", 0.7,
          r"cast off", r"unberthed", r"last line", r"lines let go", r"singled up", r"all lines clear"),
    _rule("NAV_PILOT_OFF", 0.7, r"pilot off", r"pilot disembarked", r"pilot left vessel", r"drop pilot"),
    _rule("NAV_COSP", 0.7,
          r"\bc\.?o\.?s\.?p\b", r"commencement of sea passage", r"full away", r"\bsailing\b",
          r"departure from port limits"),
    # Legacy tags kept for records mapped before the NAV_/CARGO_ taxonomy.
    _rule("ARRIVAL_PILOT_STATION", 0.6, r"pilot station", r"\barrived\b"),
    _rule("PILOT_ON_BOARD", 0.8, r"pilot on board", r"\bpilot boarded\b", r"\bpilot on\b"),
    _rule("ANCHOR_DROPPED", 0.8, r"anchor(ed)?\s?(dropped|let go)", r"\bat anchor\b"),
    _rule("ANCHOR_AWEIGH", 0.8, r"anchor aweigh", r"\bweighed anchor\b"),
    _rule("ALL_FAST", 0.9, r"all fast", r"\balongside\b", r"\bberthed\b"),
    _rule("GANGWAY_SECURED", 0.7, r"gangway\s+(secured|in position)"),
    _rule("HATCHES_OPENED", 0.7, r"hatch(es)?\s+(opened|open)", r"holds?\s+opened"),
    _rule("HATCHES_CLOSED", 0.7, r"hatch(es)?\s+(closed|sealed)", r"holds?\s+sealed"),
    _rule("DRAFT_SURVEY_START", 0.75, r"draft survey (commenced|started|initial)"),
    _rule("DRAFT_SURVEY_END", 0.75, r"draft survey (completed|finished|final)"),
    _rule("INSPECTION_START", 0.6, r"(inspection|survey)\s+(commenced|started)"),
    _rule("INSPECTION_END", 0.6, r"(inspection|survey)\s+(completed|finished)"),
    _rule("LOADING_START", 0.8, r"loading\s+(commenced|started)", r"\bload(ing)?\s*commenced\b"),
    _rule("LOADING_STOP", 0.8,
          r"loading\s+suspended", r"loading\s+stoppage", r"high winds.*loading", r"\bstopped loading\b"),
    _rule("LOADING_RESUME", 0.8, r"loading\s+resumed"),
    _rule("DISCHARGE_START", 0.75, r"discharge\s+(commenced|started)"),
    _rule("DISCHARGE_STOP", 0.75, r"discharge\s+(stopped|suspended)"),
    _rule("DISCHARGE_RESUME", 0.75, r"discharge\s+resumed"),
    _rule("SHIFTING_START", 0.6, r"shifting\s+commenced", r"shift(ed|ing)\s+to\b"),
    _rule("SHIFTING_END", 0.6, r"shifting\s+completed"),
    _rule("DEPART_PILOT_ON_BOARD", 0.7, r"pilot on board.*departure", r"pilot boarded.*depart"),
    _rule("CAST_OFF", 0.7, r"cast off", r"let go (lines|ropes)", r"unberthed"),
    _rule("DEPARTED", 0.8, r"\bsailed\b", r"\bdeparted\b", r"underway"),
)


class CanonicalEventMapper:
    """
    First-match classifier over an ordered rule table.

    Args:
        rules: Ordered mapping rules; the built-in table when omitted
        source: "static" for the built-in table, "custom" for loaded rules
    """

    def __init__(self, rules: Optional[Sequence[CanonicalMappingRule]] = None, source: str = "static"):
        self.rules = tuple(rules) if rules else DEFAULT_RULES
        self.source = source if rules else "static"

    def map(self, label: Optional[str]) -> CanonicalMatch:
        if not label:
            return CanonicalMatch()
        for rule in self.rules:
            if rule.matches(label):
                return CanonicalMatch(rule.canonical, rule.confidence)
        return CanonicalMatch()

    def to_dict(self) -> dict:
        return {"source": self.source, "rules": [rule.to_dict() for rule in self.rules]}


_default_mapper = CanonicalEventMapper()


def map_canonical_event(label: Optional[str]) -> CanonicalMatch:
    return _default_mapper.map(label)


def load_mapping_rules(path) -> List[CanonicalMappingRule]:
    """
    Read custom mapping rules from a JSON file.

    The file holds a list of ``{"canonical": TAG, "keywords": [regex...], "confidence": float}``.
    Entries without a tag or without a valid pattern are skipped.

    Returns:
        The valid rules in file order (empty when the file is missing or unreadable)
    """
    path = Path(path)
    if not path.exists():
        logger.warning("Mapping file %s not found, using built-in rules", path)
        return []
    try:
        entries = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not read mapping file %s: %s", path, e)
        return []
    if not isinstance(entries, list):
        logger.warning("Mapping file %s must hold a list of rules", path)
        return []

    rules = []
    for idx, entry in enumerate(entries):
        if not isinstance(entry, dict) or not entry.get("canonical"):
            logger.warning("Skipping mapping rule %d: no canonical tag", idx)
            continue
        patterns = []
        for keyword in entry.get("keywords") or []:
            try:
                patterns.append(re.compile(str(keyword), re.IGNORECASE))
            except re.error as e:
                logger.warning("Skipping pattern %r in rule %s: %s", keyword, entry["canonical"], e)
        if not patterns:
            continue
        try:
            confidence = float(entry.get("confidence", 0.6))
        except (TypeError, ValueError):
            confidence = 0.6
        rules.append(CanonicalMappingRule(str(entry["canonical"]), tuple(patterns), confidence))

    logger.info("Loaded %d custom mapping rules from %s", len(rules), path)
    return rules


def build_mapper(mapping_file: Optional[str] = None) -> CanonicalEventMapper:
    if not mapping_file:
        return CanonicalEventMapper()
    rules = load_mapping_rules(mapping_file)
    return CanonicalEventMapper(rules, source="custom") if rules else CanonicalEventMapper()


def collect_unmapped_labels(events: Iterable) -> List[Tuple[str, int]]:
    """Tally labels that received no canonical tag, most frequent first."""
    counts = Counter(
        ev.label.strip() for ev in events if not ev.canonical_event and ev.label and ev.label.strip()
    )
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))
