"""Incremental AI classification of newly starred repositories.

Only repos whose fullName is missing from the analyzed store are sent to the
provider, in sequential batches. A batch that fails is snapshotted to
failed-batch-{offset}.json and skipped; the run carries on and persists
everything that did parse. The store is read once and written once per run.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import analyzed_store
from classifier import build_classification_prompt, parse_classification_response, unknown_categories
from errors import ProviderInvocationError, ResponseFormatError
from models import AnalyzedRepo, RawRepo
from provider_base import AnalysisProvider

BATCH_SIZE = int(os.getenv("ANALYZE_BATCH_SIZE", "10"))
BATCH_DELAY_SECONDS = float(os.getenv("ANALYZE_BATCH_DELAY_SECONDS", "1"))
MAX_ATTEMPTS = int(os.getenv("ANALYZE_MAX_ATTEMPTS", "1"))

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class AnalysisSummary:
    """Counts reported at the end of an analysis run."""

    total: int = 0
    already_analyzed: int = 0
    new: int = 0
    analyzed: int = 0
    failed_offsets: list[int] = field(default_factory=list)
    store_size: int = 0

    @property
    def batches_failed(self) -> int:
        return len(self.failed_offsets)


def find_new_repos(raw_repos: Sequence[RawRepo], existing: Sequence[AnalyzedRepo]) -> list[RawRepo]:
    """Raw repos whose fullName is not in the analyzed store, in input order."""
    known = {record.full_name for record in existing}
    return [repo for repo in raw_repos if repo.full_name not in known]


def partition(repos: Sequence[RawRepo], size: int = BATCH_SIZE) -> list[tuple[int, list[RawRepo]]]:
    """Split repos into consecutive (offset, batch) pairs of at most size items."""
    if size < 1:
        raise ValueError(f"Batch size must be positive, got {size}")
    return [(offset, list(repos[offset:offset + size])) for offset in range(0, len(repos), size)]


async def classify_batch(provider: AnalysisProvider, batch: Sequence[RawRepo]) -> list[AnalyzedRepo]:
    """One provider round-trip for a batch. Raises on invocation or format errors."""
    prompt = build_classification_prompt(batch)
    content = await provider.analyze(prompt)
    results = parse_classification_response(content)

    for full_name, category in unknown_categories(results):
        LOGGER.warning("Category %r for %s is not in the taxonomy; keeping it", category, full_name)
    return results


async def run_analysis(
    provider: AnalysisProvider,
    raw_repos: Sequence[RawRepo] | None = None,
    analyzed_path: str | Path | None = None,
    failed_dir: str | Path | None = None,
    batch_size: int | None = None,
    delay_seconds: float | None = None,
    max_attempts: int | None = None,
) -> AnalysisSummary:
    """Classify repos not yet in the analyzed store and append them to it."""
    batch_size = batch_size or BATCH_SIZE
    delay_seconds = BATCH_DELAY_SECONDS if delay_seconds is None else delay_seconds
    max_attempts = max(1, max_attempts or MAX_ATTEMPTS)

    if raw_repos is None:
        raw_repos = analyzed_store.load_raw_repos()

    stored = analyzed_store.read_analyzed_payload(analyzed_path)
    existing = analyzed_store.analyzed_records(stored)
    new_repos = find_new_repos(raw_repos, existing)

    summary = AnalysisSummary(
        total=len(raw_repos),
        already_analyzed=len(existing),
        new=len(new_repos),
        store_size=len(stored),
    )
    LOGGER.info(
        "Analysis input: total=%s already_analyzed=%s new=%s",
        summary.total,
        summary.already_analyzed,
        summary.new,
    )

    if not new_repos:
        LOGGER.info("No new repos to analyze; analyzed store is up to date")
        return summary

    LOGGER.info("Using provider %s (%s)", provider.name, provider.model)
    accumulated: list[AnalyzedRepo] = []
    batches = partition(new_repos, batch_size)

    for position, (offset, batch) in enumerate(batches):
        LOGGER.info(
            "Analyzing new repos %s-%s of %s",
            offset + 1,
            offset + len(batch),
            len(new_repos),
        )

        results = await _classify_with_attempts(provider, batch, offset, max_attempts)
        if results is None:
            summary.failed_offsets.append(offset)
            _snapshot_failed_batch(offset, batch, failed_dir)
        else:
            accumulated.extend(results)
            LOGGER.info("Batch done: %s/%s new repos analyzed", len(accumulated), len(new_repos))

        if position < len(batches) - 1:
            await asyncio.sleep(delay_seconds)

    path = analyzed_store.save_analyzed(accumulated, analyzed_path, previous=stored)
    summary.analyzed = len(accumulated)
    summary.store_size = len(stored) + len(accumulated)

    LOGGER.info(
        "Incremental analysis complete: new_analyzed=%s failed_batches=%s store_total=%s path=%s",
        summary.analyzed,
        summary.batches_failed,
        summary.store_size,
        path,
    )
    return summary


async def _classify_with_attempts(
    provider: AnalysisProvider,
    batch: Sequence[RawRepo],
    offset: int,
    max_attempts: int,
) -> list[AnalyzedRepo] | None:
    for attempt in range(1, max_attempts + 1):
        try:
            return await classify_batch(provider, batch)
        except (ProviderInvocationError, ResponseFormatError) as exc:
            LOGGER.warning(
                "Batch at offset=%s failed on attempt %s/%s: %s",
                offset,
                attempt,
                max_attempts,
                exc,
            )
        except Exception as exc:  # one batch must never abort the run
            LOGGER.exception(
                "Batch at offset=%s failed with an unexpected error on attempt %s/%s: %s",
                offset,
                attempt,
                max_attempts,
                exc,
            )
    LOGGER.error("Batch at offset=%s failed after %s attempt(s); snapshotting inputs", offset, max_attempts)
    return None


def _snapshot_failed_batch(offset: int, batch: Sequence[RawRepo], directory: str | Path | None) -> None:
    try:
        analyzed_store.write_failed_batch(offset, batch, directory)
    except OSError:
        LOGGER.exception("Could not snapshot failed batch at offset=%s; continuing", offset)
