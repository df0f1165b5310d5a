"""AI grading pipeline: rubric mapping, similarity scoring and submission processing."""

from .grader import AIGrader, InvalidAIGradeError, normalize_ai_response
from .models import (
    ActivityKind, ActivitySettings, AIResponse, MappedResult, ResultRecord, ResultStatus,
    RubricSnapshot, SimilarityAnalysis,
)
from .queue_worker import GradingWorker
from .rubric_analyzer import RubricAnalyzer, build_snapshot, map_scores_to_rubric, rubric_to_json
from .similarity import SimilarityAnalyzer, analyze_overlap
from .submission_processor import SubmissionProcessor

__all__ = [
    'AIGrader',
    'InvalidAIGradeError',
    'normalize_ai_response',
    'ActivityKind',
    'ActivitySettings',
    'AIResponse',
    'MappedResult',
    'ResultRecord',
    'ResultStatus',
    'RubricSnapshot',
    'SimilarityAnalysis',
    'GradingWorker',
    'RubricAnalyzer',
    'build_snapshot',
    'map_scores_to_rubric',
    'rubric_to_json',
    'SimilarityAnalyzer',
    'analyze_overlap',
    'SubmissionProcessor',
]
