"""Merge raw repos with their classifications into the published bundle.

The bundle (public/data/repos.json by default) is the only file the display
frontend reads. It is rebuilt from scratch on every run:

    repos       every raw repo, sorted by stars descending, each carrying
                categories / tags / aiSummary (falling back to the repo
                description when it has not been analyzed yet)
    categories  distinct categories in first-seen order, for the filter bar
    tags        distinct tags in first-seen order
    updatedAt   ISO-8601 UTC generation time

Run it through `python main.py generate`, which loads .env.local and .env first.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from pathlib import Path

import analyzed_store
from models import AnalyzedRepo, FinalRepo, PublishedBundle, RawRepo

BUNDLE_OUTPUT_PATH = os.getenv("BUNDLE_OUTPUT_PATH", "public/data/repos.json")

LOGGER = logging.getLogger(__name__)


def merge_repos(raw_repos: Sequence[RawRepo], analyzed: Iterable[AnalyzedRepo]) -> list[FinalRepo]:
    """Attach each repo's classification and sort by stars, highest first."""
    by_name: dict[str, AnalyzedRepo] = {}
    for record in analyzed:
        by_name.setdefault(record.full_name, record)

    merged: list[FinalRepo] = []
    for repo in raw_repos:
        analysis = by_name.get(repo.full_name)
        if analysis is None:
            merged.append(FinalRepo(repo=repo, categories=(), tags=(), ai_summary=repo.description))
        else:
            merged.append(
                FinalRepo(
                    repo=repo,
                    categories=analysis.categories,
                    tags=analysis.tags,
                    ai_summary=analysis.ai_summary or repo.description,
                )
            )

    # sorted() is stable, so equal star counts keep input order.
    return sorted(merged, key=lambda r: r.repo.stars, reverse=True)


def distinct_values(values: Iterable[str]) -> list[str]:
    """Non-empty values, each listed once, in first-seen order."""
    seen: dict[str, None] = {}
    for value in values:
        if value and value not in seen:
            seen[value] = None
    return list(seen)


def build_bundle(
    raw_repos: Sequence[RawRepo],
    analyzed: Iterable[AnalyzedRepo],
    now: datetime | None = None,
) -> PublishedBundle:
    repos = merge_repos(raw_repos, analyzed)
    timestamp = (now or datetime.now(UTC)).astimezone(UTC)
    return PublishedBundle(
        repos=repos,
        categories=distinct_values(c for r in repos for c in r.categories),
        tags=distinct_values(t for r in repos for t in r.tags),
        updated_at=timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
    )


def write_bundle(bundle: PublishedBundle, path: str | Path | None = None) -> Path:
    """Replace the bundle file atomically so readers never see a partial write."""
    path = Path(path or BUNDLE_OUTPUT_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(bundle.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)
    return path


def generate_bundle(
    raw_repos: Sequence[RawRepo] | None = None,
    analyzed_path: str | Path | None = None,
    output_path: str | Path | None = None,
) -> PublishedBundle:
    """Read raw repos and the analyzed store, then publish the merged bundle."""
    if raw_repos is None:
        raw_repos = analyzed_store.load_raw_repos()
    analyzed = analyzed_store.load_analyzed(analyzed_path)

    bundle = build_bundle(raw_repos, analyzed)
    path = write_bundle(bundle, output_path)

    LOGGER.info(
        "Generated bundle: repos=%s categories=%s tags=%s path=%s",
        len(bundle.repos),
        len(bundle.categories),
        len(bundle.tags),
        path,
    )
    return bundle

