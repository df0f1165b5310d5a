"""Rubric snapshots, prompt export and AI score mapping."""

import hashlib
import json
import logging
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Protocol, Sequence, Tuple

from autograde.libs.text_utils import clean_label, normalize_name, strip_tags
from .models import (
    ActivityKind, AICriterionScore, AIResponse, Criterion, Level, MappedCriterion,
    MappedResult, RubricSnapshot,
)

LOG = logging.getLogger(__name__)

RUBRIC_METHODS = ('rubric', 'rubric_ranges')

# Activity kinds whose rubric comes from the platform's advanced grading definition.
# Quiz rubrics are attached through activity settings instead (see SubmissionProcessor).
SNAPSHOT_KINDS = frozenset({ActivityKind.ASSIGN})

MESSAGES = {
    'criterion': 'Criterion',
    'level': 'Level',
    'default_rubric_name': 'Assignment Rubric',
    'error_rubric_missing_criteria': 'The AI response has no score for rubric criterion "{}"',
    'warning_rubric_changed': 'The rubric has changed since this submission was graded',
}


def get_string(key: str, arg: Any = None) -> str:
    """Look up a user-facing message, substituting ``arg`` when given."""
    message = MESSAGES[key]
    return message.format(arg) if arg is not None else message


class RubricDefinitionProvider(Protocol):
    """Where rubric definitions come from (the LMS advanced grading store)."""

    def get_active_method(self, module_kind: ActivityKind, instance_id: int,
                          cm_id: Optional[int] = None) -> Optional[str]:
        ...

    def get_definition(self, module_kind: ActivityKind, instance_id: int,
                       cm_id: Optional[int], method: str) -> Optional[Mapping[str, Any]]:
        ...


def _iter_items(collection: Any) -> Iterable[Tuple[int, Mapping[str, Any]]]:
    """
    Yield (id, data) from a mapping keyed by id or a list of dicts carrying ``id``.

    Entries that are not mappings are skipped.
    """
    if isinstance(collection, Mapping):
        for key, value in collection.items():
            if isinstance(value, Mapping):
                yield int(key), value
    elif isinstance(collection, Sequence) and not isinstance(collection, str):
        for position, value in enumerate(collection, start=1):
            if isinstance(value, Mapping):
                yield int(value.get('id', position)), value


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def compute_criteria_hash(criteria: Mapping[int, Criterion]) -> str:
    """Deterministic SHA-1 over the criteria structure, in rubric order."""
    structure = {str(cid): criterion.model_dump() for cid, criterion in criteria.items()}
    encoded = json.dumps(structure, ensure_ascii=False, separators=(',', ':'))
    return hashlib.sha1(encoded.encode('utf-8', errors='replace')).hexdigest()


def build_snapshot(definition: Mapping[str, Any], module_name: str, instance_id: int,
                   cm_id: Optional[int] = None, method: str = 'rubric') -> Optional[RubricSnapshot]:
    """
    Convert a rubric definition into a RubricSnapshot.

    The definition follows the LMS layout::

        {id, name, version,
         rubric_criteria: {<criterionid>: {description,
                                           levels: {<levelid>: {definition, score}}}}}

    Returns None when the definition has no criteria.
    """
    if not isinstance(definition, Mapping) or not definition.get('rubric_criteria'):
        return None

    criteria: Dict[int, Criterion] = {}
    total_max = 0.0
    for criterion_id, criterion_data in _iter_items(definition['rubric_criteria']):
        readable_name = clean_label(criterion_data.get('description', ''))
        if not readable_name:
            readable_name = get_string('criterion')

        levels = []
        criterion_max = 0.0
        for level_id, level_data in _iter_items(criterion_data.get('levels') or {}):
            level_label = clean_label(level_data.get('definition', ''))
            level_score = _to_float(level_data.get('score', 0))
            criterion_max = max(criterion_max, level_score)
            levels.append(Level(
                id=level_id,
                label=level_label or get_string('level'),
                description=strip_tags(str(level_data.get('definition') or '')).strip(),
                score=level_score,
            ))

        total_max += criterion_max
        criteria[criterion_id] = Criterion(
            id=criterion_id,
            name=readable_name,
            normalized=normalize_name(readable_name),
            levels=levels,
            max_score=criterion_max,
        )

    if not criteria:
        return None

    return RubricSnapshot(
        module_name=str(module_name),
        instance_id=instance_id,
        cm_id=cm_id,
        definition_id=int(definition.get('id') or 0),
        method=method,
        name=clean_label(definition.get('name', '')),
        version=int(definition.get('version') or 0),
        criteria=criteria,
        max_score=total_max,
        hash=compute_criteria_hash(criteria),
    )


def rubric_to_json(rubric: Optional[RubricSnapshot]) -> Optional[str]:
    """
    Prompt-friendly JSON for a rubric.

    Internal ids and the content hash are left out; the model only needs
    names, maxima and level descriptions.
    """
    if rubric is None or not rubric.criteria:
        return None

    export = {
        'name': rubric.name or get_string('default_rubric_name'),
        'max_score': rubric.max_score,
        'criteria': [
            {
                'name': criterion.name,
                'max_score': criterion.max_score,
                'levels': [
                    {
                        'label': level.label,
                        'score': level.score,
                        'description': level.description,
                    }
                    for level in criterion.levels
                ],
            }
            for criterion in rubric.criteria.values()
        ],
    }
    return json.dumps(export, indent=4, ensure_ascii=False)


def find_matching_ai_criterion(criterion: Criterion,
                               ai_criteria: Sequence[AICriterionScore],
                               claimed: FrozenSet[int] = frozenset()) -> Optional[int]:
    """
    Index of the AI entry that scores ``criterion``, or None.

    An exact match on the normalized name wins over a fuzzy one, where the
    AI's cleaned name only appears inside the rubric name (the model often
    decorates or shortens names). Within each pass the lowest unclaimed
    index wins.
    """
    target = criterion.normalized or normalize_name(criterion.name)

    for idx, ai_criterion in enumerate(ai_criteria):
        if idx in claimed:
            continue
        ai_name = normalize_name(ai_criterion.name)
        if ai_name and ai_name == target:
            return idx

    rubric_name = criterion.name.lower()
    for idx, ai_criterion in enumerate(ai_criteria):
        if idx in claimed:
            continue
        raw_name = clean_label(ai_criterion.name)
        if raw_name and raw_name.lower() in rubric_name:
            return idx

    return None


def map_scores_to_rubric(ai_response: AIResponse, rubric: RubricSnapshot) -> MappedResult:
    """
    Reconcile an AI response against the rubric it was meant to score.

    Every rubric criterion gets exactly one mapped entry, in rubric order, with
    a score clamped to [0, criterion max]. Anything that does not line up
    (missing criteria, clamped scores, unknown AI criteria) becomes a warning
    rather than an error.
    """
    warnings = []
    mapped = []
    claimed: FrozenSet[int] = frozenset()
    calculated = 0.0

    ai_criteria = list(ai_response.criteria)

    for criterion in rubric.criteria.values():
        match_index = find_matching_ai_criterion(criterion, ai_criteria, claimed)
        if match_index is None:
            warnings.append(get_string('error_rubric_missing_criteria', criterion.name))
            score = 0.0
            feedback = ''
        else:
            claimed = claimed | {match_index}
            match = ai_criteria[match_index]
            score = float(match.score)
            feedback = match.feedback.strip()

        if score < 0:
            score = 0.0

        max_score = float(criterion.max_score)
        if score > max_score:
            warnings.append(get_string('warning_rubric_changed'))
            score = max_score

        mapped.append(MappedCriterion(
            criterionid=criterion.id,
            name=criterion.name,
            score=score,
            max_score=max_score,
            feedback=feedback,
        ))
        calculated += score

    for idx, ai_criterion in enumerate(ai_criteria):
        if idx not in claimed:
            label = ai_criterion.name.strip() or f"criterion #{idx + 1}"
            warnings.append(f"{get_string('warning_rubric_changed')}: {label}")

    total = float(ai_response.score) if ai_response.score else calculated
    max_total = float(ai_response.max_score) if ai_response.max_score else float(rubric.max_score)

    if warnings:
        LOG.info("Rubric mapping warnings for %s %s: %s",
                 rubric.module_name, rubric.instance_id, ' | '.join(warnings))

    return MappedResult(
        criteria=mapped,
        warnings=warnings,
        score=total,
        max_score=max_total,
        calculated_score=calculated,
    )


def rubric_changed(rubric: Optional[RubricSnapshot], stored_hash: Optional[str]) -> bool:
    """Whether the rubric drifted since a result was graded against ``stored_hash``."""
    if rubric is None or not stored_hash:
        return False
    return rubric.hash != stored_hash


class RubricAnalyzer:
    """Resolve activity rubrics into snapshots."""

    def __init__(self, provider: RubricDefinitionProvider):
        self.provider = provider

    def get_rubric(self, module_kind: str, instance_id: int,
                   cm_id: Optional[int] = None) -> Optional[RubricSnapshot]:
        """
        Fetch and normalize the rubric for an activity.

        Returns None when the activity is not graded by rubric, the definition
        cannot be loaded or it has no criteria.
        """
        try:
            kind = ActivityKind(module_kind)
        except ValueError:
            return None
        if kind not in SNAPSHOT_KINDS:
            return None

        try:
            method = self.provider.get_active_method(kind, instance_id, cm_id)
        except Exception as e:  # pylint: disable=broad-except
            LOG.debug("Failed to resolve grading method for %s %s: %s", kind.value, instance_id, e)
            return None

        if method not in RUBRIC_METHODS:
            return None

        try:
            definition = self.provider.get_definition(kind, instance_id, cm_id, method)
        except Exception as e:  # pylint: disable=broad-except
            LOG.debug("Failed to load rubric definition for %s %s: %s", kind.value, instance_id, e)
            return None

        if not definition:
            return None

        try:
            return build_snapshot(definition, kind.value, instance_id, cm_id, method)
        except (TypeError, ValueError) as e:
            LOG.debug("Malformed rubric definition for %s %s: %s", kind.value, instance_id, e)
            return None

    def has_rubric(self, module_kind: str, instance_id: int, cm_id: Optional[int] = None) -> bool:
        """Whether the activity currently uses a rubric-compatible grading method."""
        return self.get_rubric(module_kind, instance_id, cm_id) is not None

    rubric_to_json = staticmethod(rubric_to_json)
    map_scores_to_rubric = staticmethod(map_scores_to_rubric)
