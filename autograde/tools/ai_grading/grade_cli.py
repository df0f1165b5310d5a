#!/usr/bin/env python3
"""Command-line interface for grading a single submission through the AI gateway."""

import argparse
import logging
import sys
from pathlib import Path

import yaml

from autograde.libs.config_loader import get_config, load_all_configs
from autograde.libs.gateway_client import GatewayClient, GatewayError, Quality
from .content_extractor import BasicContentExtractor, Submission
from .grader import AIGrader, normalize_ai_response
from .rubric_analyzer import build_snapshot, map_scores_to_rubric, rubric_to_json
from .similarity import SimilarityAnalyzer

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
LOG = logging.getLogger(__name__)


def main():
    """Main entry point for autograde-grade command."""
    parser = argparse.ArgumentParser(
        description='Grade a student submission against a rubric using the AI gateway',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Grade an essay against a rubric definition
  autograde-grade --submission essay.txt --rubric rubric.yaml --question "Explain photosynthesis"

  # Also score similarity against a model answer
  autograde-grade --submission essay.txt --rubric rubric.yaml --key model_answer.txt

  # Use the best quality tier and save the result
  autograde-grade --submission essay.pdf --rubric rubric.yaml --quality best --output result.yaml
        """
    )

    parser.add_argument(
        '--submission', '-s',
        type=Path,
        required=True,
        help='Submission file (text, markdown, html or pdf)'
    )
    parser.add_argument(
        '--rubric', '-r',
        type=Path,
        default=None,
        help='Rubric definition YAML (id, name, rubric_criteria with levels)'
    )
    parser.add_argument(
        '--question', '-q',
        type=str,
        default='',
        help='Question or assignment prompt'
    )
    parser.add_argument(
        '--key', '-k',
        type=Path,
        default=None,
        help='Model answer file used for similarity scoring'
    )
    parser.add_argument(
        '--quality',
        choices=[q.value for q in Quality],
        default=None,
        help='Quality tier (default: grading.default_quality from config)'
    )
    parser.add_argument(
        '--output', '-o',
        type=Path,
        default=None,
        help='Write the result YAML here instead of stdout'
    )

    args = parser.parse_args()

    if not args.submission.exists():
        LOG.error(f"Submission file not found: {args.submission}")
        sys.exit(1)

    configs = load_all_configs()
    gateway = GatewayClient(configs)
    grader = AIGrader(gateway)
    quality = args.quality or get_config("grading.default_quality", configs, default="balanced")

    extracted = BasicContentExtractor().extract(Submission(files=[args.submission]))
    if not extracted.text:
        LOG.error(f"No text could be extracted from {args.submission}: {extracted.files[0].error}")
        sys.exit(1)

    snapshot = None
    if args.rubric:
        with open(args.rubric, 'r', encoding='utf-8') as f:
            definition = yaml.safe_load(f)
        snapshot = build_snapshot(definition, 'assign', 0)
        if snapshot is None:
            LOG.error(f"Rubric {args.rubric} has no criteria")
            sys.exit(1)

    try:
        data = grader.grade_text(args.question, extracted.text, rubric_to_json(snapshot), quality)
    except GatewayError as e:
        LOG.error(f"Grading failed: {e}")
        sys.exit(1)

    ai_response = normalize_ai_response(data)
    result = {'ai_response': ai_response.model_dump()}
    if snapshot is not None:
        mapped = map_scores_to_rubric(ai_response, snapshot)
        result['rubric_analysis'] = mapped.model_dump()
        result['rubric_hash'] = snapshot.hash

    if args.key:
        key_text = args.key.read_text(encoding='utf-8', errors='ignore')
        result['similarity'] = SimilarityAnalyzer(gateway).analyze(key_text, extracted.text).model_dump()

    output = yaml.dump(result, default_flow_style=False, sort_keys=False, allow_unicode=True)
    if args.output:
        args.output.write_text(output, encoding='utf-8')
        LOG.info(f"Result written to {args.output}")
    else:
        print(output)


if __name__ == '__main__':
    main()
