"""Turn LMS submission events into queued grading work."""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

from .content_extractor import BasicContentExtractor, ContentExtractor, Submission, html_to_plain_text
from .models import ActivityKind, ActivitySettings, QueueItem, RubricSnapshot
from .rubric_analyzer import RubricAnalyzer, rubric_to_json
from .stores import SettingsStore, WorkQueue

LOG = logging.getLogger(__name__)

ESSAY_QTYPES = ('essay',)


class AssignSubmissionEvent(BaseModel):
    """An assignment submission as reported by the LMS event."""
    userid: int
    courseid: Optional[int] = None
    cmid: Optional[int] = None
    assignid: Optional[int] = None
    assignment_name: str = ""
    submissionid: Optional[int] = None
    submission: Optional[Submission] = None
    grading_instructions: str = Field(default="", description="HTML grader instructions")
    event_name: str = ""
    event_data: Dict[str, Any] = Field(default_factory=dict)


class QuestionAttempt(BaseModel):
    """One question slot of a submitted quiz attempt."""
    slot: int
    questionid: int
    qtype: str
    questionname: str = ""
    questiontext: str = ""
    answer: str = ""
    response_summary: str = ""
    attachments: List[Path] = Field(default_factory=list)
    graderinfo: str = ""
    maxmark: Optional[float] = None
    needs_manual_grading: bool = True


class QuizAttemptEvent(BaseModel):
    """A submitted quiz attempt."""
    attemptid: int
    userid: int
    courseid: Optional[int] = None
    cmid: Optional[int] = None
    quizid: int
    questions: List[QuestionAttempt] = Field(default_factory=list)
    event_name: str = ""


RubricResolution = Tuple[Optional[RubricSnapshot], Optional[str]]


class SubmissionProcessor:
    """
    Extract content, attach key text and rubric, and enqueue grading work.

    Each activity kind maps to its own processing and rubric resolution
    strategy; supporting a new kind means extending ``ActivityKind`` and both
    tables below.
    """

    def __init__(self, queue: WorkQueue, settings: SettingsStore,
                 rubric_analyzer: RubricAnalyzer,
                 extractor: Optional[ContentExtractor] = None):
        self.queue = queue
        self.settings = settings
        self.rubric_analyzer = rubric_analyzer
        self.extractor = extractor or BasicContentExtractor()

        self._handlers: Dict[ActivityKind, Callable[[Any], List[int]]] = {
            ActivityKind.ASSIGN: self.process_assign_submission,
            ActivityKind.QUIZ: self.process_quiz_attempt,
        }
        self._rubric_resolvers: Dict[ActivityKind, Callable[..., RubricResolution]] = {
            ActivityKind.ASSIGN: self._resolve_assign_rubric,
            ActivityKind.QUIZ: self._resolve_quiz_rubric,
        }

    def process(self, kind: Union[ActivityKind, str],
                event: Union[AssignSubmissionEvent, QuizAttemptEvent]) -> List[int]:
        """Dispatch an event to its activity handler; returns the queue ids created."""
        return self._handlers[ActivityKind(kind)](event)

    def _settings_if_enabled(self, kind: ActivityKind, instance_id: int) -> Optional[ActivitySettings]:
        settings = self.settings.get_activity_settings(kind, instance_id)
        if not settings.enabled:
            LOG.debug("AI grading disabled for %s %s", kind.value, instance_id)
            return None
        return settings

    def _resolve_assign_rubric(self, instance_id: int, cm_id: Optional[int],
                               settings: ActivitySettings) -> RubricResolution:
        snapshot = self.rubric_analyzer.get_rubric(ActivityKind.ASSIGN.value, instance_id, cm_id)
        return snapshot, rubric_to_json(snapshot)

    def _resolve_quiz_rubric(self, instance_id: int, cm_id: Optional[int],
                             settings: ActivitySettings) -> RubricResolution:
        if not settings.rubricid:
            return None, None
        return None, self.settings.get_quiz_rubric_json(settings.rubricid)

    def process_assign_submission(self, event: AssignSubmissionEvent) -> List[int]:
        """Queue an assignment submission for grading."""
        if not event.assignid:
            return []
        settings = self._settings_if_enabled(ActivityKind.ASSIGN, event.assignid)
        if settings is None:
            return []

        submission_text = ''
        files = []
        if event.submission is not None:
            try:
                extracted = self.extractor.extract(event.submission)
                submission_text = extracted.text
                files = [f.model_dump(exclude_none=True) for f in extracted.files]
            except Exception as e:  # pylint: disable=broad-except
                LOG.error("Content extraction failed for assign %s user %s: %s",
                          event.assignid, event.userid, e)

        key_text = html_to_plain_text(event.grading_instructions)
        if not key_text:
            key_text = settings.custominstructions.strip()

        payload = dict(event.event_data)
        payload.update({
            'userid': event.userid,
            'courseid': event.courseid,
            'cmid': event.cmid,
            'assignid': event.assignid,
            'modulename': ActivityKind.ASSIGN.value,
            'instanceid': event.assignid,
            'submissiontext': submission_text,
            'submissionid': event.submissionid,
            'assignment': event.assignment_name,
            'keytext': key_text,
        })
        if files:
            payload['submissionfiles'] = files

        snapshot, rubric_json = self._rubric_resolvers[ActivityKind.ASSIGN](
            event.assignid, event.cmid, settings)
        if snapshot is not None:
            payload['rubric_snapshot'] = snapshot.model_dump(mode='json')
            if rubric_json:
                payload['rubric_json'] = rubric_json

        queue_id = self.queue.enqueue(QueueItem(
            userid=event.userid,
            courseid=event.courseid,
            cmid=event.cmid,
            event_name=event.event_name,
            payload=payload,
        ))
        return [queue_id]

    def _attachment_answer(self, question: QuestionAttempt) -> Tuple[str, List[str]]:
        texts = []
        names = []
        for path in question.attachments:
            extracted = self.extractor.extract(Submission(files=[path]))
            if extracted.text:
                texts.append(extracted.text)
                names.append(path.name)
                continue
            error = extracted.files[0].error if extracted.files else None
            names.append(f"{path.name} (error: {error})" if error else path.name)

        if texts:
            return "\n\n".join(texts).strip(), names
        if names:
            return (
                f"Student submitted the following files: {', '.join(names)}. "
                "The system could not automatically extract full text. Please review them manually."
            ), names
        return '', names

    def process_quiz_attempt(self, event: QuizAttemptEvent) -> List[int]:
        """Queue every essay answer of a quiz attempt that needs manual grading."""
        settings = self._settings_if_enabled(ActivityKind.QUIZ, event.quizid)
        if settings is None:
            return []

        _, rubric_json = self._rubric_resolvers[ActivityKind.QUIZ](event.quizid, event.cmid, settings)

        queue_ids = []
        for question in event.questions:
            if not question.needs_manual_grading or question.qtype not in ESSAY_QTYPES:
                continue

            answer = question.answer.strip() or question.response_summary.strip()
            submission_files: List[str] = []
            if not answer and question.attachments:
                answer, submission_files = self._attachment_answer(question)
            if not answer:
                continue

            question_text = html_to_plain_text(question.questiontext)
            payload = {
                'userid': event.userid,
                'courseid': event.courseid,
                'cmid': event.cmid,
                'quizid': event.quizid,
                'attemptid': event.attemptid,
                'questionid': question.questionid,
                'slot': question.slot,
                'modulename': ActivityKind.QUIZ.value,
                'instanceid': event.quizid,
                'question': question_text or question.questionname,
                'questionname': question.questionname,
                'submissiontext': answer,
                'submissionfiles': submission_files,
                'keytext': html_to_plain_text(question.graderinfo),
                'maxmark': question.maxmark,
            }
            if rubric_json:
                payload['rubric_json'] = rubric_json

            queue_ids.append(self.queue.enqueue(QueueItem(
                userid=event.userid,
                courseid=event.courseid,
                cmid=event.cmid,
                event_name=event.event_name,
                payload=payload,
            )))

        return queue_ids
