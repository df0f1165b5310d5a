"""Similarity between a reference (key) answer and a student answer."""

import json
import logging
import re
from typing import Any, Dict, List, Optional

from autograde.libs.gateway_client import GatewayClient, GatewayError, Quality
from autograde.libs.text_utils import normalize_plain_text
from .models import SimilarityAnalysis

LOG = logging.getLogger(__name__)

COVERAGE_WEIGHT = 0.7
JACCARD_WEIGHT = 0.3
MIN_TOKEN_LENGTH = 3
PARTIAL_CREDIT = 0.5

DEFAULT_SEMANTIC_REASONING = (
    "Similarity based on alignment of meaning and reasoning between the key answer "
    "and the student response."
)

_FENCE_OPEN_RE = re.compile(r'^```(?:json)?\s*', re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r'\s*```$')


def decode_json_response(content: str) -> Optional[Dict[str, Any]]:
    """
    Pull a JSON object out of a model reply.

    Handles code fences and prose around the object by falling back to the
    span between the first '{' and the last '}'.
    """
    content = (content or '').strip()
    if not content:
        return None
    content = _FENCE_OPEN_RE.sub('', content)
    content = _FENCE_CLOSE_RE.sub('', content)

    try:
        decoded = json.loads(content)
    except json.JSONDecodeError:
        decoded = None

    if not isinstance(decoded, dict):
        start = content.find('{')
        end = content.rfind('}')
        if start != -1 and end > start:
            try:
                decoded = json.loads(content[start:end + 1])
            except json.JSONDecodeError:
                decoded = None

    return decoded if isinstance(decoded, dict) else None


def normalize_list(items: Any) -> List[str]:
    """Non-empty, stripped strings from a list of scalars."""
    if not isinstance(items, list):
        return []
    output = []
    for item in items:
        if isinstance(item, (dict, list)) or item is None:
            continue
        value = str(item).strip()
        if value:
            output.append(value)
    return output


def tokenize(text: str) -> List[str]:
    """Whitespace tokens of normalized text, ignoring short words."""
    if not text:
        return []
    return [token for token in text.split() if len(token) >= MIN_TOKEN_LENGTH]


def format_term_list(terms: List[str], prefix: str, limit: int = 12) -> List[str]:
    """Prefix each term for display, keeping at most ``limit`` of them."""
    return [f"{prefix} {term}".strip() for term in terms[:limit]]


def build_overlap_reasoning(analysis: Dict[str, Any]) -> str:
    coverage = f"{analysis['coverage_percent']:.2f}"
    jaccard = f"{analysis['jaccard_percent']:.2f}"
    final = f"{analysis['final_percent']:.2f}"
    weight_coverage = int(round(COVERAGE_WEIGHT * 100))
    weight_jaccard = int(round(JACCARD_WEIGHT * 100))

    return "\n".join([
        f"Key terms matched: {analysis['matched_terms_count']} of "
        f"{analysis['key_terms_count']} ({coverage}%).",
        f"Overall term overlap (Jaccard): {jaccard}% (matched {analysis['matched_terms_count']} "
        f"of {analysis['union_terms_count']} unique terms).",
        f"Final similarity = ({weight_coverage}% x {coverage}%) + "
        f"({weight_jaccard}% x {jaccard}%) = {final}%.",
        f"Short words under {MIN_TOKEN_LENGTH} characters are ignored.",
    ])


def analyze_overlap(key: str, student: str) -> SimilarityAnalysis:
    """
    Term-overlap similarity, always available.

    Coverage (share of key terms the student used) is weighted above the
    symmetric Jaccard overlap so verbose but correct answers are not punished.
    """
    key_set = sorted(set(tokenize(normalize_plain_text(key))))
    student_set = sorted(set(tokenize(normalize_plain_text(student))))
    student_lookup = set(student_set)

    matched = [term for term in key_set if term in student_lookup]
    missing = [term for term in key_set if term not in student_lookup]

    key_count = len(key_set)
    student_count = len(student_set)
    match_count = len(matched)
    union_count = key_count + student_count - match_count

    coverage = (match_count / key_count) * 100 if key_count > 0 else 0.0
    jaccard = (match_count / union_count) * 100 if union_count > 0 else 0.0
    final = round(coverage * COVERAGE_WEIGHT + jaccard * JACCARD_WEIGHT, 2)

    analysis = {
        'method': 'overlap',
        'key_terms_count': key_count,
        'student_terms_count': student_count,
        'matched_terms_count': match_count,
        'union_terms_count': union_count,
        'matched_terms': matched,
        'missing_terms': missing,
        'coverage_percent': round(coverage, 2),
        'jaccard_percent': round(jaccard, 2),
        'final_percent': final,
        'weights': {'coverage': COVERAGE_WEIGHT, 'jaccard': JACCARD_WEIGHT},
    }
    analysis['reasoning'] = build_overlap_reasoning(analysis)
    return SimilarityAnalysis(**analysis)


class SimilarityAnalyzer:
    """Semantic similarity through the gateway, with term overlap as the fallback."""

    def __init__(self, gateway: Optional[GatewayClient] = None):
        self.gateway = gateway

    def analyze(self, key: str, student: str) -> SimilarityAnalysis:
        """Compare key and student text, preferring the semantic method."""
        semantic = self.analyze_semantic(key, student)
        if semantic is not None:
            return semantic
        return analyze_overlap(key, student)

    def analyze_semantic(self, key: str, student: str) -> Optional[SimilarityAnalysis]:
        """
        Concept-level similarity scored by the gateway.

        Returns None when the gateway is unavailable or its answer cannot be
        used; the caller then falls back to term overlap.
        """
        if self.gateway is None or not self.gateway.is_ready():
            return None

        try:
            response = self.gateway.grade('semantic_similarity', {
                'answer_key': key,
                'student_answer': student,
            }, Quality.BALANCED)
        except GatewayError as e:
            LOG.debug("Semantic similarity unavailable, using overlap: %s", e)
            return None

        content = response.content
        if isinstance(content, dict):
            decoded = content
        elif isinstance(content, str):
            decoded = decode_json_response(content)
        else:
            decoded = None
        if not decoded:
            LOG.debug("Semantic similarity response could not be decoded, using overlap")
            return None

        matched = normalize_list(decoded.get('matched_concepts', []))
        partial_source = decoded.get('partially_matched_concepts')
        if partial_source is None:
            partial_source = decoded.get('partial_concepts', [])
        partial = normalize_list(partial_source)
        missing = normalize_list(decoded.get('missing_concepts', []))
        reasoning = str(decoded.get('reasoning') or '').strip() or DEFAULT_SEMANTIC_REASONING

        total_concepts = len(matched) + len(partial) + len(missing)
        key_count = max(total_concepts, 1)
        if total_concepts > 0:
            points = len(matched) + PARTIAL_CREDIT * len(partial)
            similarity = (points / total_concepts) * 100
            reasoning += (
                f"\nSimilarity: ({len(matched)} full + {len(partial)} partial x {PARTIAL_CREDIT}) / "
                f"{total_concepts} = {similarity:.2f}%."
            )
        else:
            try:
                similarity = float(decoded.get('similarity_percent', 0) or 0)
            except (TypeError, ValueError):
                similarity = 0.0
        similarity = max(0.0, min(100.0, similarity))

        return SimilarityAnalysis(
            method='semantic',
            key_terms_count=key_count,
            matched_terms_count=len(matched),
            partial_terms_count=len(partial),
            matched_terms=matched,
            partial_terms=partial,
            missing_terms=missing,
            final_percent=round(similarity, 2),
            similarity_breakdown={
                'full': len(matched),
                'partial': len(partial),
                'missing': len(missing),
                'total': key_count,
            },
            reasoning=reasoning,
        )
