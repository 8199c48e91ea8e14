"""
CV Analyzer - CLI Entry Point.

Analyzes a local PDF without the HTTP server or database:
extraction, prompt, AI call, then prints the report.

Usage: python main.py <cv.pdf> [--level mid] [--major "Computer Science"] [--title "Backend Engineer"]
"""

import argparse
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

from cv_analyzer.agents.ai_client import AIClient
from cv_analyzer.agents.prompts import build_analysis_prompt
from cv_analyzer.config import settings
from cv_analyzer.errors import AIServiceError, ExtractionError
from cv_analyzer.models import ExperienceLevel, JobContext, score_label
from cv_analyzer.tools.pdf_parser import PDFTextExtractor
from cv_analyzer.utils.logger import configure_logging


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Analyze a CV (PDF) with the configured language model.")
    parser.add_argument("cv", help="Path to the CV PDF")
    parser.add_argument("--level", default="mid", choices=[level.value for level in ExperienceLevel])
    parser.add_argument("--major", default="Computer Science")
    parser.add_argument("--title", default=None, help="Target job title")
    parser.add_argument("--json", action="store_true", help="Print the full report as JSON")
    parser.add_argument("--prompt-only", action="store_true", help="Print the prompt without calling the model")
    return parser.parse_args(argv)


def print_report(outcome) -> None:
    analysis = outcome.analysis
    print(f"\nOverall score: {analysis.overall_score} ({score_label(analysis.overall_score)})")
    if analysis.summary.strengths:
        print(f"Strengths: {analysis.summary.strengths}")
    if analysis.summary.areas_of_improvement:
        print(f"Areas of improvement: {analysis.summary.areas_of_improvement}")
    if analysis.summary.key_findings:
        print(f"Notes: {analysis.summary.key_findings}")

    print("\nSections:")
    for name, section in analysis.sections:
        print(f"  {name:<28} {section.score}")

    if analysis.recommendations:
        print("\nRecommendations:")
        for rec in analysis.recommendations:
            print(f"  [{rec.priority.value}] {rec.suggestion}")

    usage = outcome.usage
    print(
        f"\n{usage.tokens_used} tokens, ~${usage.cost:.4f}, "
        f"{usage.processing_time_ms}ms, attempts={usage.attempts}"
        + (" (degraded)" if usage.degraded else "")
    )


def main(argv: list[str] | None = None) -> int:
    """Run the CV analyzer CLI."""
    args = parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(settings.log_level)

    print("CV Analyzer")
    print("=" * 40)

    cv_path = Path(args.cv)
    if not cv_path.exists() or cv_path.suffix.lower() != ".pdf":
        print(f"Error: {cv_path} is not a valid PDF")
        return 1

    try:
        extraction = PDFTextExtractor().extract(cv_path)
    except (ExtractionError, TimeoutError) as e:
        print(f"Extraction failed: {e}")
        return 1
    print(f"Extracted {extraction.word_count} words from {extraction.page_count} page(s)")

    context = JobContext(
        experience_level=ExperienceLevel(args.level),
        major=args.major,
        target_job_title=args.title,
    )
    prompt = build_analysis_prompt(extraction.text, context)
    if args.prompt_only:
        print(prompt)
        return 0

    if not settings.openai_api_key:
        print("Error: OPENAI_API_KEY not set")
        return 1

    print(f"Analyzing with {settings.ai_model}...")
    try:
        outcome = AIClient().analyze(prompt)
    except AIServiceError as e:
        print(f"Analysis failed: {e}")
        return 1

    if args.json:
        report = outcome.analysis.model_dump(by_alias=True, mode="json")
        report["aiUsage"] = outcome.usage.model_dump(by_alias=True, mode="json")
        print(json.dumps(report, indent=2))
    else:
        print_report(outcome)
    return 0


if __name__ == "__main__":
    sys.exit(main())
