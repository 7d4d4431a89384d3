"""Similarity scoring between found items and lost reports"""

import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Set
from claimdesk.models.item import Item, LostReport
from claimdesk.models.match import ScoreBreakdown
from claimdesk.models.settings import MatchWeights

STOP_WORDS = frozenset({'the', 'a', 'an', 'in', 'on', 'at', 'for', 'of', 'with'})

LOCATION_EXPANSIONS = {
    't1': 'terminal 1',
    't2': 'terminal 2',
    't3': 'terminal 3',
    'apt': 'apartment',
    'st': 'street',
    'ave': 'avenue',
    'rd': 'road',
    'rm': 'room',
    'flr': 'floor',
    'lib': 'library',
    'dept': 'department',
    'bldg': 'building',
}

COMPATIBLE_COLORS = {
    'GRAY': {'SILVER', 'BLACK', 'WHITE'},
    'SILVER': {'GRAY'},
    'GOLD': {'YELLOW', 'BEIGE'},
    'BEIGE': {'BROWN', 'WHITE', 'GOLD'},
    'RED': {'ORANGE', 'PINK', 'MAROON'},
    'BLUE': {'NAVY', 'TEAL', 'CYAN'},
}

# Internal feature blend, independent of the outer match weights
FEATURE_TEXT_WEIGHT = 0.15
FEATURE_BRAND_WEIGHT = 0.55
FEATURE_SIZE_WEIGHT = 0.22
FEATURE_CONTENTS_WEIGHT = 0.08
BRAND_PARTIAL_CREDIT = 0.8

_PUNCTUATION = re.compile(r'[^\w\s]')
_WHITESPACE = re.compile(r'\s+')


def round_half_up(value: float, places: int = 0) -> float:
    """Round like a calculator: ties go away from zero"""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def normalize_text(text: Optional[str]) -> str:
    if not text:
        return ''
    text = _PUNCTUATION.sub('', text.lower())
    return _WHITESPACE.sub(' ', text).strip()


def _keyword_tokens(keywords: Iterable[str]) -> List[str]:
    tokens = []
    seen = set()
    for keyword in keywords:
        token = keyword.strip().lower()
        if len(token) <= 2 or token in STOP_WORDS or token in seen:
            continue
        seen.add(token)
        tokens.append(token)
    return tokens


def keyword_similarity(item_keywords: Iterable[str], report_keywords: Iterable[str]) -> float:
    """
    Overlap ratio of two keyword lists (0-1)

    An item keyword counts towards the intersection when it equals, contains
    or is contained in some report keyword.
    """
    k1 = _keyword_tokens(item_keywords)
    k2 = _keyword_tokens(report_keywords)
    if not k1 or not k2:
        return 0.0

    intersection = sum(1 for k in k1 if any(k in other or other in k for other in k2))
    union = len(set(k1) | set(k2))
    return intersection / union if union else 0.0


def date_proximity(date_found, date_lost) -> float:
    """Bucketed closeness of two timestamps (0.1-1)"""
    days = abs((date_found - date_lost).total_seconds()) / 86400
    if days <= 0:
        return 1.0
    if days <= 1:
        return 0.95
    if days <= 3:
        return 0.8
    if days <= 7:
        return 0.6
    if days <= 14:
        return 0.4
    return 0.1


def expand_location(text: Optional[str]) -> str:
    normalized = normalize_text(text)
    if not normalized:
        return ''
    return ' '.join(LOCATION_EXPANSIONS.get(word, word) for word in normalized.split(' '))


def location_similarity(location_found: Optional[str], location_lost: Optional[str]) -> float:
    """Similarity of two free-text locations (0-1)"""
    s1 = expand_location(location_found)
    s2 = expand_location(location_lost)
    if not s1 or not s2:
        return 0.0
    if s1 == s2:
        return 1.0
    if s1 in s2 or s2 in s1:
        return 0.9

    words1 = s1.split()
    words2 = s2.split()
    intersection = sum(
        1 for w1 in words1
        if any(w2 == w1 or (len(w2) > 4 and w2 in w1) for w2 in words2)
    )
    return intersection / max(len(words1), len(words2))


def _color_name(color) -> str:
    if color is None:
        return ''
    return str(getattr(color, 'value', color)).strip().upper()


def color_similarity(item_color, report_color) -> float:
    """1 for the same color, 0.5 for a compatible family, else 0"""
    c1 = _color_name(item_color)
    c2 = _color_name(report_color)
    if not c1 or not c2:
        return 0.0
    if c1 == c2:
        return 1.0
    if c2 in COMPATIBLE_COLORS.get(c1, ()) or c1 in COMPATIBLE_COLORS.get(c2, ()):
        return 0.5
    return 0.0


def _content_words(contents: Iterable[str]) -> Set[str]:
    joined = ' '.join(contents).lower()
    return {word for word in joined.split() if len(word) > 2}


def feature_similarity(item: Item, report: LostReport) -> float:
    """
    Blend of identifying features, brand, size and bag contents (0-1)

    Each part only contributes when both sides provide it:
    - features (15%): item features overlapping a report feature / longer list
    - brand (55%): exact match, or 80% credit when one contains the other
    - size (22%): exact match
    - bag contents (8%): shared words / union of words
    """
    score = 0.0

    f1 = [f for f in (normalize_text(x) for x in item.identifying_features) if f]
    f2 = [f for f in (normalize_text(x) for x in report.identifying_features) if f]
    if f1 and f2:
        matches = sum(1 for f in f1 if any(rf in f or f in rf for rf in f2))
        score += matches / max(len(f1), len(f2)) * FEATURE_TEXT_WEIGHT

    b1 = (item.brand or '').strip().lower()
    b2 = (report.brand or '').strip().lower()
    if b1 and b2:
        if b1 == b2:
            score += FEATURE_BRAND_WEIGHT
        elif b1 in b2 or b2 in b1:
            score += FEATURE_BRAND_WEIGHT * BRAND_PARTIAL_CREDIT

    if item.size is not None and report.size is not None and item.size == report.size:
        score += FEATURE_SIZE_WEIGHT

    w1 = _content_words(item.bag_contents)
    w2 = _content_words(report.bag_contents)
    if w1 and w2:
        score += len(w1 & w2) / len(w1 | w2) * FEATURE_CONTENTS_WEIGHT

    return round_half_up(score, 2)


def score(item: Item, report: LostReport, weights: MatchWeights) -> ScoreBreakdown:
    """
    Score a found item against a lost report

    Candidates are only ever compared within one category, so the category
    dimension always contributes its full weight.

    Args:
        item: Found item
        report: Lost report of the same category
        weights: Per-dimension weights from the current settings snapshot

    Returns:
        ScoreBreakdown with weighted sub-scores (1 decimal) and a total in [0, 100]
    """
    category = 100 * weights.category
    keyword = keyword_similarity(item.keywords, report.keywords) * 100 * weights.keyword
    date = date_proximity(item.date_found, report.date_lost) * 100 * weights.date
    location = location_similarity(item.location_found, report.location_lost) * 100 * weights.location
    feature = feature_similarity(item, report) * 100 * weights.feature
    color = color_similarity(item.color, report.color) * 100 * weights.color

    total = category + keyword + date + location + feature + color
    total = int(min(max(round_half_up(total), 0), 100))

    return ScoreBreakdown(
        category_score=round_half_up(max(category, 0), 1),
        keyword_score=round_half_up(max(keyword, 0), 1),
        date_score=round_half_up(max(date, 0), 1),
        location_score=round_half_up(max(location, 0), 1),
        feature_score=round_half_up(max(feature, 0), 1),
        color_score=round_half_up(max(color, 0), 1),
        total_score=total
    )
