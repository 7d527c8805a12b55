"""Fuzzy matching of file names and tenant names to imported meters."""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .models import MeterImport

EXACT = 'exact'
NORMALIZED = 'normalized'
FUZZY = 'fuzzy'
PARTIAL = 'partial'

MIN_FUZZY_CONFIDENCE = 60
MIN_NORMALIZED_CONFIDENCE = 85
MIN_PARTIAL_CONFIDENCE = 65
MIN_ASSIGNMENT_CONFIDENCE = 50


@dataclass
class MatchResult:
    meter_id: str
    meter_name: str
    confidence: int
    match_type: str


def normalize_name(name: str) -> str:
    """Strip extensions, export suffixes, trailing dates and punctuation; lowercase."""
    if not name:
        return ''
    text = re.sub(r'\.(csv|xlsx?|txt|dat)$', '', name, flags=re.I)
    text = re.sub(r'[_-]?\d{4}[-_]?\d{2}[-_]?\d{2}$', '', text)
    text = re.sub(r'[_-]?\d{2}[-_]\d{2}[-_]\d{4}$', '', text)
    text = re.sub(r'[_-]?\d{2}[-_:]?\d{2}[-_:]?\d{2}$', '', text)
    text = re.sub(r'[_-]?(data|export|meter|reading|profile|import|scada|raw|final|v\d+)$', '', text, flags=re.I)
    text = re.sub(r'[_-]+', ' ', text)
    text = re.sub(r'[^\w\s]', '', text)
    return re.sub(r'\s+', ' ', text).strip().lower()


def levenshtein_distance(a: str, b: str) -> int:
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> int:
    """Levenshtein similarity on a 0-100 scale."""
    if not a or not b:
        return 0
    if a == b:
        return 100
    return int(round((1 - levenshtein_distance(a, b) / max(len(a), len(b))) * 100))


def containment_score(name: str, meter_name: str) -> int:
    """Score substring containment or, failing that, shared words longer than two letters."""
    n, m = name.lower(), meter_name.lower()
    if not n or not m:
        return 0
    if m in n:
        return int(min(90, 70 + (len(m) / len(n)) * 30))
    if n in m:
        return int(min(85, 65 + (len(n) / len(m)) * 30))

    n_words = {w for w in n.split() if len(w) > 2}
    m_words = {w for w in m.split() if len(w) > 2}
    if not n_words or not m_words:
        return 0
    overlap = len(n_words & m_words)
    if overlap == 0:
        return 0
    return int(round(overlap / max(len(n_words), len(m_words)) * 70))


def _candidate_names(meter: MeterImport) -> List[str]:
    return [n for n in (meter.shop_name, meter.meter_label, meter.shop_number, meter.site_name) if n]


def match_name_to_meter(name: str, meters: Iterable[MeterImport]) -> Optional[MatchResult]:
    """
    Find the meter whose shop name, label, number or site best matches `name`.

    An exact normalized match returns immediately. Otherwise the highest scoring
    normalized, partial or fuzzy candidate wins.
    """
    target = normalize_name(name)
    if not target:
        return None

    best = None
    for meter in meters:
        for candidate in _candidate_names(meter):
            normalized = normalize_name(candidate)
            if target == normalized:
                return MatchResult(meter.id, candidate, 100, EXACT)

            score = similarity(target, normalized)
            if score >= MIN_NORMALIZED_CONFIDENCE and (best is None or score > best.confidence):
                best = MatchResult(meter.id, candidate, score, NORMALIZED)

            contained = containment_score(target, normalized)
            if contained >= MIN_PARTIAL_CONFIDENCE and (best is None or contained > best.confidence):
                best = MatchResult(meter.id, candidate, contained, PARTIAL)

            if (best is None or best.confidence < MIN_FUZZY_CONFIDENCE) and score >= MIN_FUZZY_CONFIDENCE:
                if best is None or score > best.confidence:
                    best = MatchResult(meter.id, candidate, score, FUZZY)
    return best


def match_names_to_meters(names: Iterable[str], meters: List[MeterImport]) -> Dict[str, Optional[MatchResult]]:
    """
    Assign each name to at most one meter, each meter to at most one name.

    Longer names are matched first since they carry more information.
    """
    results = {}
    used = set()
    for name in sorted(names, key=len, reverse=True):
        available = [m for m in meters if m.id not in used]
        match = match_name_to_meter(name, available)
        if match and match.confidence >= MIN_ASSIGNMENT_CONFIDENCE:
            results[name] = match
            used.add(match.meter_id)
        else:
            results[name] = None
            logging.debug(f"No meter match for '{name}'")
    return results
