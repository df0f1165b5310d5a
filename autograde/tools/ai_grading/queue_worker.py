"""Worker that turns queued submissions into stored grading results."""

import logging
from typing import Any, Dict, List, Optional

from tqdm import tqdm

from autograde.libs.gateway_client import GatewayError, TransportError
from .grader import AIGrader, normalize_ai_response
from .models import ActivityKind, QueueItem, ResultRecord, ResultStatus, RubricSnapshot
from .rubric_analyzer import map_scores_to_rubric
from .similarity import SimilarityAnalyzer
from .stores import ResultStore, SettingsStore, WorkQueue

LOG = logging.getLogger(__name__)


class GradingWorker:
    """Grade one queued submission at a time and persist the result for review."""

    def __init__(self, grader: AIGrader, settings: SettingsStore, store: ResultStore,
                 similarity: Optional[SimilarityAnalyzer] = None):
        self.grader = grader
        self.settings = settings
        self.store = store
        self.similarity = similarity

    def _build_question(self, payload: Dict[str, Any], custom_instructions: str) -> str:
        question = str(payload.get('question') or payload.get('assignment') or '').strip()
        key_text = str(payload.get('keytext') or '').strip()
        custom_instructions = custom_instructions.strip()
        if custom_instructions and custom_instructions != key_text:
            question = f"{question}\n\nAdditional grading instructions:\n{custom_instructions}".strip()
        return question

    def _save_failure(self, base: Dict[str, Any], error: Exception) -> ResultRecord:
        LOG.error("Grading failed for %s %s user %s: %s",
                  base['modulename'].value, base['instanceid'], base['userid'], error)
        record = ResultRecord(
            **base,
            status=ResultStatus.FAILED,
            error=str(error),
            retryable=isinstance(error, TransportError),
        )
        record_id = self.store.save(record)
        return record.model_copy(update={'id': record_id})

    def process(self, item: QueueItem) -> ResultRecord:
        """
        Grade a queued item and store the result.

        Gateway failures produce a ``failed`` record rather than an exception;
        an unusable AI grade is never stored as a score.
        """
        payload = item.payload
        kind = ActivityKind(payload['modulename'])
        instance_id = int(payload['instanceid'])
        settings = self.settings.get_activity_settings(kind, instance_id)

        snapshot = None
        if payload.get('rubric_snapshot'):
            snapshot = RubricSnapshot.model_validate(payload['rubric_snapshot'])

        base = {
            'queueid': item.id,
            'userid': item.userid,
            'modulename': kind,
            'instanceid': instance_id,
            'rubric_hash': snapshot.hash if snapshot else None,
        }

        submission_text = str(payload.get('submissiontext') or '')
        if not submission_text.strip():
            return self._save_failure(base, ValueError("Submission has no gradable text"))

        try:
            data = self.grader.grade_text(
                self._build_question(payload, settings.custominstructions),
                submission_text,
                payload.get('rubric_json'),
                settings.quality,
            )
        except GatewayError as e:
            return self._save_failure(base, e)

        ai_response = normalize_ai_response(data)
        mapped = None
        if snapshot is not None:
            mapped = map_scores_to_rubric(ai_response, snapshot)
            grade, max_grade = mapped.score, mapped.max_score
        else:
            grade = ai_response.score
            max_grade = ai_response.max_score or payload.get('maxmark')

        similarity = None
        key_text = str(payload.get('keytext') or '').strip()
        if key_text and self.similarity is not None:
            similarity = self.similarity.analyze(key_text, submission_text)

        record = ResultRecord(
            **base,
            status=ResultStatus.RELEASED if settings.autorelease else ResultStatus.DRAFT,
            grade=grade,
            maxgrade=max_grade,
            reasoning=ai_response.reasoning,
            confidence=ai_response.confidence,
            model=str(data.get('model') or data.get('provider') or '') or None,
            rubric_analysis=mapped,
            similarity=similarity,
        )
        record_id = self.store.save(record)
        LOG.info("Stored %s result %s for %s %s user %s (grade %s/%s)", record.status.value,
                 record_id, kind.value, instance_id, item.userid, grade, max_grade)
        return record.model_copy(update={'id': record_id})

    def drain(self, queue: WorkQueue) -> List[ResultRecord]:
        """Process every pending item in the queue."""
        results = []
        for item in tqdm(list(queue.pending()), desc="Grading submissions", unit="submission"):
            record = self.process(item)
            queue.mark(item.id, record.status)
            results.append(record)
        return results
