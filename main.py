"""CLI entrypoint for the starred-repo classification pipeline."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

# Pipeline modules read paths and limits from the environment at import time.
load_dotenv(".env.local")
load_dotenv()

from analyzed_store import load_raw_repos  # noqa: E402
from batch_processor import AnalysisSummary, run_analysis  # noqa: E402
from errors import ConfigurationError  # noqa: E402
from merger import generate_bundle  # noqa: E402
from provider_base import AnalysisProvider  # noqa: E402
from provider_registry import (  # noqa: E402
    create_provider,
    format_provider_overview,
    select_provider_interactive,
    settings_from_env,
)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line flags."""
    parser = argparse.ArgumentParser(description="Classify starred GitHub repos with an AI provider")
    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("analyze", "Classify repos missing from the analyzed store"),
        ("update", "Run analyze, then generate the published bundle"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument(
            "-s",
            "--select",
            action="store_true",
            help="Choose a builtin provider and model interactively instead of using AI_PROVIDER/AI_MODEL",
        )

    sub.add_parser("generate", help="Merge raw repos with the analyzed store into the published bundle")
    sub.add_parser("providers", help="List the available providers and models")
    return parser.parse_args(argv)


def resolve_provider(interactive: bool) -> AnalysisProvider:
    """Build the run's provider once, from the environment or an interactive pick."""
    if interactive:
        return select_provider_interactive().provider

    return create_provider(settings_from_env())


def analyze(interactive: bool) -> AnalysisSummary:
    provider = resolve_provider(interactive)
    logging.info("Using AI provider: %s (%s)", provider.name, provider.model)
    raw_repos = load_raw_repos()
    return asyncio.run(run_analysis(provider, raw_repos=raw_repos))


def generate() -> None:
    generate_bundle()


def main(argv: list[str] | None = None) -> int:
    """Initialize config and execute the requested command."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    args = parse_args(argv)

    if args.command == "providers":
        print(format_provider_overview(verbose=True))
        return 0

    try:
        if args.command in ("analyze", "update"):
            summary = analyze(interactive=args.select)
            logging.info(
                "Run complete. total=%s new=%s analyzed=%s failed_batches=%s store_total=%s",
                summary.total,
                summary.new,
                summary.analyzed,
                summary.batches_failed,
                summary.store_size,
            )
            if summary.failed_offsets:
                logging.warning(
                    "Failed batch offsets (see failed-batch-<offset>.json): %s",
                    ", ".join(str(o) for o in summary.failed_offsets),
                )
        if args.command in ("generate", "update"):
            generate()
    except ConfigurationError as exc:
        logging.error("Failed to create AI provider: %s", exc)
        print(format_provider_overview(), file=sys.stderr)
        return 1
    except (OSError, ValueError) as exc:
        logging.error("Pipeline file I/O failed: %s", exc)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
