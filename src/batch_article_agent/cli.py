#!/usr/bin/env python3
# CLI entry point for Batch Article Agent
# Generates articles for a list of keywords and writes them as Markdown files

import argparse
import asyncio
import logging
import re
import signal
import sys
from pathlib import Path
from typing import Optional

from batch_article_agent.config import ProducerConfig
from batch_article_agent.errors import BatchError, ConfigurationError
from batch_article_agent.orchestrator import MAX_BATCH_JOBS, BatchOrchestrator
from batch_article_agent.producer import ArticleProducer, DryRunProducer, LLMArticleProducer
from batch_article_agent.state import (
    ArticleOutput,
    Audience,
    BatchConfig,
    BatchJob,
    BatchRun,
    JobSpec,
    JobStatus,
    ProgressSnapshot,
    Tone,
    job_specs_from_keywords,
)

logger = logging.getLogger(__name__)

_STATUS_ICONS = {
    JobStatus.PENDING: "…",
    JobStatus.RUNNING: "▶",
    JobStatus.COMPLETED: "✓",
    JobStatus.FAILED: "✗",
    JobStatus.CANCELLED: "■",
}


def read_keywords(keywords: list[str], keywords_file: Optional[str] = None) -> list[str]:
    """Collect keywords from arguments and an optional file (one per line).

    Blank lines are dropped and surrounding whitespace stripped.
    """
    collected = list(keywords)
    if keywords_file:
        collected.extend(Path(keywords_file).read_text(encoding="utf-8").splitlines())
    return [k.strip() for k in collected if k.strip()]


def slugify(text: str) -> str:
    slug = re.sub(r"[^\w\-]+", "-", text.strip().lower(), flags=re.UNICODE).strip("-")
    return slug or "article"


def write_articles(run: BatchRun, output_dir: Path) -> list[Path]:
    """Write every completed article to ``output_dir`` as Markdown."""
    output_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for index, job in enumerate(run.jobs, start=1):
        if job.status != JobStatus.COMPLETED or not isinstance(job.output, ArticleOutput):
            continue
        path = output_dir / f"{index:02d}_{slugify(job.keyword)}.md"
        parts = [job.output.markdown_content.rstrip(), ""]
        if job.output.meta_description:
            parts.insert(0, f"<!-- meta: {job.output.meta_description} -->\n")
        if job.output.x_posts:
            parts.append("## X posts\n")
            parts.extend(f"- [{p.target}] {p.text}" for p in job.output.x_posts)
            parts.append("")
        path.write_text("\n".join(parts), encoding="utf-8")
        written.append(path)
    return written


def _print_job(job: BatchJob) -> None:
    icon = _STATUS_ICONS[job.status]
    detail = job.phase.label if job.status == JobStatus.RUNNING else job.status.value
    if job.error:
        detail = f"{detail}: {job.error[:120]}"
    print(f"  {icon} [{job.keyword}] {detail}")


def _print_progress(snapshot: ProgressSnapshot) -> None:
    eta = ""
    if snapshot.estimated_time_remaining is not None:
        eta = f", ~{snapshot.estimated_time_remaining / 60:.1f} min remaining"
    print(
        f"Progress: {snapshot.overall_progress}% "
        f"({snapshot.completed}/{snapshot.total} completed, {snapshot.failed} failed{eta})"
    )


async def run_batch(
    specs: list[JobSpec],
    config: BatchConfig,
    producer: ArticleProducer,
    max_jobs: int = MAX_BATCH_JOBS,
) -> BatchRun:
    """Run one batch, printing job and progress updates as they happen.

    SIGINT requests cooperative cancellation instead of killing in-flight
    requests.
    """
    orchestrator = BatchOrchestrator(producer, max_jobs=max_jobs)
    orchestrator.subscribe_jobs(_print_job)
    orchestrator.subscribe_progress(_print_progress)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, orchestrator.cancel)
        handler_installed = True
    except (NotImplementedError, RuntimeError):
        handler_installed = False

    try:
        return await orchestrator.run(specs, config)
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Batch Article Agent - Generate blog articles for many keywords"
    )
    parser.add_argument("keywords", nargs="*", help="Keywords, one article each")
    parser.add_argument(
        "--keywords-file",
        help="File with one keyword per line",
    )
    parser.add_argument(
        "--tone",
        choices=[t.value for t in Tone],
        default=Tone.POLITE.value,
        help="Writing tone (default: polite)",
    )
    parser.add_argument(
        "--audience",
        choices=[a.value for a in Audience],
        default=Audience.BEGINNER.value,
        help="Target audience (default: beginner)",
    )
    parser.add_argument(
        "--length",
        type=int,
        default=5000,
        help="Target article length in characters (default: 5000)",
    )
    parser.add_argument("--image-theme", default="", help="Visual theme for header images")
    parser.add_argument(
        "--concurrency",
        type=int,
        default=2,
        help="Jobs per wave (default: 2)",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=3.0,
        help="Seconds between waves (default: 3)",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=2,
        help="Retries per job after the first attempt (default: 2)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=300.0,
        help="Seconds per job attempt (default: 300)",
    )
    parser.add_argument(
        "--output-dir",
        default="output/articles",
        help="Directory for generated Markdown files (default: output/articles)",
    )
    parser.add_argument(
        "--no-images",
        action="store_true",
        help="Skip header image generation",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Walk through all phases without calling any API",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        keywords = read_keywords(args.keywords, args.keywords_file)
    except OSError as e:
        print(f"Error: cannot read keywords file: {e}")
        return 1
    if not keywords:
        print("Error: no keywords given")
        return 1

    try:
        config = BatchConfig(
            max_concurrent_jobs=args.concurrency,
            delay_between_jobs=args.delay,
            retry_attempts=args.retries,
            timeout=args.timeout,
        )
    except BatchError as e:
        print(f"Error: {e}")
        return 1

    if args.dry_run:
        producer: ArticleProducer = DryRunProducer()
    else:
        try:
            producer = LLMArticleProducer(
                ProducerConfig.from_env(generate_images=not args.no_images)
            )
        except ConfigurationError as e:
            print(f"Configuration error: {e}")
            return 1

    specs = job_specs_from_keywords(
        keywords,
        tone=args.tone,
        audience=args.audience,
        target_length=args.length,
        image_theme=args.image_theme,
    )

    print(f"Starting batch: {len(specs)} keywords, {config.max_concurrent_jobs} at a time")
    try:
        run = asyncio.run(run_batch(specs, config, producer))
    except BatchError as e:
        print(f"Error: {e}")
        return 1

    written = write_articles(run, Path(args.output_dir))

    snapshot = run.progress()
    print("\n" + "=" * 50)
    print("Batch Result:")
    print(f"  Completed: {snapshot.completed}/{snapshot.total}")
    print(f"  Failed: {snapshot.failed}")
    if snapshot.cancelled or snapshot.pending:
        print(f"  Cancelled: {snapshot.cancelled}, not started: {snapshot.pending}")
    for path in written:
        print(f"  -> {path}")

    return 0 if snapshot.completed == snapshot.total else 1


if __name__ == "__main__":
    sys.exit(main())
