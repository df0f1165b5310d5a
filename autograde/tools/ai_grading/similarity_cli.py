#!/usr/bin/env python3
"""CLI for inspecting how a student answer aligns with a model answer."""

import click
import logging
from pathlib import Path
from rich.console import Console
from rich.table import Table

from autograde.libs.config_loader import load_all_configs
from autograde.libs.gateway_client import GatewayClient
from .similarity import SimilarityAnalyzer, format_term_list

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
LOG = logging.getLogger(__name__)

console = Console()


@click.command()
@click.option(
    '--key',
    '-k',
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help='Path to the model (key) answer'
)
@click.option(
    '--student',
    '-s',
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help='Path to the student answer'
)
@click.option(
    '--offline',
    is_flag=True,
    help='Skip the gateway and use term overlap only'
)
@click.option(
    '--limit',
    type=int,
    default=12,
    help='Maximum number of terms to list per group'
)
def main(key, student, offline, limit):
    """
    Score the similarity between a key answer and a student answer.

    Example:
        autograde-similarity -k model_answer.txt -s student.txt --offline
    """
    gateway = None if offline else GatewayClient(load_all_configs())
    analyzer = SimilarityAnalyzer(gateway)
    analysis = analyzer.analyze(
        key.read_text(encoding='utf-8', errors='ignore'),
        student.read_text(encoding='utf-8', errors='ignore'),
    )

    console.print(f"\n[bold cyan]Similarity ({analysis.method})[/bold cyan]: "
                  f"[bold]{analysis.final_percent:.2f}%[/bold]")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Group")
    table.add_column("Count", justify="right")
    table.add_column("Terms")
    table.add_row("Matched", str(analysis.matched_terms_count),
                  "\n".join(format_term_list(analysis.matched_terms, "+", limit)))
    if analysis.partial_terms:
        table.add_row("Partial", str(analysis.partial_terms_count),
                      "\n".join(format_term_list(analysis.partial_terms, "~", limit)))
    table.add_row("Missing", str(len(analysis.missing_terms)),
                  "\n".join(format_term_list(analysis.missing_terms, "-", limit)))
    console.print(table)

    console.print("\n[bold]Reasoning[/bold]")
    console.print(analysis.reasoning)


if __name__ == '__main__':
    main()
