"""Tests for turning LMS events into queued grading work."""

import json
from pathlib import Path
from unittest.mock import Mock

import pytest

from autograde.tools.ai_grading.content_extractor import Submission
from autograde.tools.ai_grading.models import ExtractedContent, SubmittedFile
from autograde.tools.ai_grading.rubric_analyzer import RubricAnalyzer
from autograde.tools.ai_grading.stores import ConfigRubricProvider, ConfigSettingsStore, InMemoryWorkQueue
from autograde.tools.ai_grading.submission_processor import (
    AssignSubmissionEvent, QuestionAttempt, QuizAttemptEvent, SubmissionProcessor,
)


RUBRIC_DEFINITION = {
    'id': 3,
    'name': 'Lab report',
    'rubric_criteria': {
        1: {'description': 'Method', 'levels': {1: {'definition': 'Sound', 'score': 5}}},
        2: {'description': 'Results', 'levels': {2: {'definition': 'Correct', 'score': 5}}},
    },
}


def make_configs(assign_settings=None, quiz_settings=None, rubric=True):
    configs = {
        'grading': {'default_quality': 'balanced', 'autorelease': False},
        'activities': {
            'assign': {10: assign_settings if assign_settings is not None else {'enabled': True}},
            'quiz': {20: quiz_settings if quiz_settings is not None else {'enabled': True}},
        },
        'rubrics': {'assign': {}},
        'quiz_rubrics': {
            4: {'name': 'Essay rubric', 'rubric_criteria': {
                1: {'description': 'Argument', 'levels': {1: {'definition': 'Strong', 'score': 4}}},
            }},
        },
    }
    if rubric:
        configs['rubrics']['assign'][10] = {'method': 'rubric', 'definition': RUBRIC_DEFINITION}
    return configs


def make_processor(configs, extractor=None):
    queue = InMemoryWorkQueue()
    processor = SubmissionProcessor(
        queue,
        ConfigSettingsStore(configs),
        RubricAnalyzer(ConfigRubricProvider(configs)),
        extractor=extractor,
    )
    return processor, queue


def assign_event(**overrides):
    data = {
        'userid': 2,
        'courseid': 1,
        'cmid': 30,
        'assignid': 10,
        'assignment_name': 'Lab 1',
        'submissionid': 99,
        'submission': Submission(onlinetext='My answer', onlinetext_format='plain'),
        'grading_instructions': '<p>Expect &quot;control group&quot;</p>',
        'event_name': 'assessable_submitted',
    }
    data.update(overrides)
    return AssignSubmissionEvent(**data)


def essay(**overrides):
    data = {
        'slot': 1,
        'questionid': 500,
        'qtype': 'essay',
        'questionname': 'Q1',
        'questiontext': '<p>Why is the sky blue?</p>',
        'answer': 'Rayleigh scattering',
        'graderinfo': '<p>Mentions scattering</p>',
        'maxmark': 5,
    }
    data.update(overrides)
    return QuestionAttempt(**data)


class TestAssignSubmission:

    def test_payload(self):
        processor, queue = make_processor(make_configs())

        ids = processor.process('assign', assign_event())

        assert ids == [1]
        item = queue.items[0]
        assert item.userid == 2
        assert item.event_name == 'assessable_submitted'
        payload = item.payload
        assert payload['modulename'] == 'assign'
        assert payload['instanceid'] == 10
        assert payload['assignid'] == 10
        assert payload['submissionid'] == 99
        assert payload['assignment'] == 'Lab 1'
        assert payload['submissiontext'] == 'My answer'
        assert payload['keytext'] == 'Expect "control group"'
        assert 'submissionfiles' not in payload

    def test_rubric_attached(self):
        processor, queue = make_processor(make_configs())
        processor.process_assign_submission(assign_event())

        payload = queue.items[0].payload
        assert payload['rubric_snapshot']['max_score'] == 10
        assert len(payload['rubric_snapshot']['hash']) == 40
        assert json.loads(payload['rubric_json'])['name'] == 'Lab report'

    def test_no_rubric(self):
        processor, queue = make_processor(make_configs(rubric=False))
        processor.process_assign_submission(assign_event())

        payload = queue.items[0].payload
        assert 'rubric_snapshot' not in payload
        assert 'rubric_json' not in payload

    def test_disabled_activity(self):
        processor, queue = make_processor(make_configs(assign_settings={'enabled': False}))

        assert processor.process('assign', assign_event()) == []
        assert queue.items == []

    def test_unconfigured_activity_is_disabled(self):
        processor, queue = make_processor(make_configs())

        assert processor.process('assign', assign_event(assignid=11)) == []

    def test_missing_assignid(self):
        processor, queue = make_processor(make_configs())
        assert processor.process('assign', assign_event(assignid=None)) == []

    def test_custom_instructions_as_key_text(self):
        configs = make_configs(assign_settings={'enabled': True, 'custominstructions': ' Be strict '})
        processor, queue = make_processor(configs)

        processor.process('assign', assign_event(grading_instructions=''))

        assert queue.items[0].payload['keytext'] == 'Be strict'

    def test_extraction_failure_still_queues(self):
        extractor = Mock()
        extractor.extract.side_effect = RuntimeError('corrupt upload')
        processor, queue = make_processor(make_configs(), extractor=extractor)

        assert processor.process('assign', assign_event()) == [1]
        assert queue.items[0].payload['submissiontext'] == ''

    def test_submission_files_recorded(self):
        extractor = Mock()
        extractor.extract.return_value = ExtractedContent(
            text='text', files=[SubmittedFile(name='scan.png', error='unsupported file type .png')],
        )
        processor, queue = make_processor(make_configs(), extractor=extractor)

        processor.process('assign', assign_event())

        assert queue.items[0].payload['submissionfiles'] == [
            {'name': 'scan.png', 'error': 'unsupported file type .png'},
        ]

    def test_event_data_kept(self):
        processor, queue = make_processor(make_configs())
        processor.process('assign', assign_event(event_data={'contextid': 77, 'userid': 999}))

        payload = queue.items[0].payload
        assert payload['contextid'] == 77
        assert payload['userid'] == 2

    def test_unknown_kind(self):
        processor, _ = make_processor(make_configs())
        with pytest.raises(ValueError):
            processor.process('forum', assign_event())


class TestQuizAttempt:

    def make_event(self, questions):
        return QuizAttemptEvent(attemptid=8, userid=2, courseid=1, cmid=31, quizid=20,
                                questions=questions, event_name='attempt_submitted')

    def test_essay_queued(self):
        processor, queue = make_processor(make_configs())

        ids = processor.process('quiz', self.make_event([essay()]))

        assert ids == [1]
        payload = queue.items[0].payload
        assert payload['modulename'] == 'quiz'
        assert payload['instanceid'] == 20
        assert payload['attemptid'] == 8
        assert payload['questionid'] == 500
        assert payload['slot'] == 1
        assert payload['question'] == 'Why is the sky blue?'
        assert payload['submissiontext'] == 'Rayleigh scattering'
        assert payload['submissionfiles'] == []
        assert payload['keytext'] == 'Mentions scattering'
        assert payload['maxmark'] == 5
        assert 'rubric_json' not in payload

    def test_only_manual_essays(self):
        processor, _ = make_processor(make_configs())
        questions = [
            essay(slot=1),
            essay(slot=2, qtype='multichoice'),
            essay(slot=3, needs_manual_grading=False),
            essay(slot=4, answer='', response_summary=''),
        ]

        assert processor.process('quiz', self.make_event(questions)) == [1]

    def test_response_summary_fallback(self):
        processor, queue = make_processor(make_configs())
        processor.process('quiz', self.make_event([essay(answer='  ', response_summary='Summary text')]))

        assert queue.items[0].payload['submissiontext'] == 'Summary text'

    def test_question_name_when_text_empty(self):
        processor, queue = make_processor(make_configs())
        processor.process('quiz', self.make_event([essay(questiontext='')]))

        assert queue.items[0].payload['question'] == 'Q1'

    def test_quiz_rubric_library(self):
        processor, queue = make_processor(make_configs(quiz_settings={'enabled': True, 'rubricid': 4}))
        processor.process('quiz', self.make_event([essay()]))

        rubric = json.loads(queue.items[0].payload['rubric_json'])
        assert rubric['name'] == 'Essay rubric'
        assert rubric['criteria'][0]['name'] == 'Argument'

    def test_attachment_text(self, tmp_path):
        attachment = tmp_path / 'answer.txt'
        attachment.write_text('Light scatters off molecules.')
        processor, queue = make_processor(make_configs())

        processor.process('quiz', self.make_event([essay(answer='', attachments=[attachment])]))

        payload = queue.items[0].payload
        assert 'Light scatters off molecules.' in payload['submissiontext']
        assert payload['submissionfiles'] == ['answer.txt']

    def test_unreadable_attachment_notice(self, tmp_path):
        attachment = tmp_path / 'diagram.png'
        attachment.write_bytes(b'\x89PNG')
        processor, queue = make_processor(make_configs())

        processor.process('quiz', self.make_event([essay(answer='', attachments=[attachment])]))

        text = queue.items[0].payload['submissiontext']
        assert text.startswith('Student submitted the following files: diagram.png')
        assert 'unsupported file type .png' in text

    def test_disabled_quiz(self):
        processor, queue = make_processor(make_configs(quiz_settings={'enabled': False}))
        assert processor.process('quiz', self.make_event([essay()])) == []
        assert queue.items == []


def test_attachments_accept_strings():
    question = essay(attachments=['a/b.txt'])
    assert question.attachments == [Path('a/b.txt')]
