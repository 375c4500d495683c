"""Flat JSON files shared between runs: raw input, analyzed store, failed batches."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from models import AnalyzedRepo, RawRepo

RAW_REPOS_PATH = os.getenv("RAW_REPOS_PATH", "data/stars-raw.json")
ANALYZED_PATH = os.getenv("ANALYZED_PATH", "data/analyzed.json")
FAILED_BATCH_DIR = os.getenv("FAILED_BATCH_DIR", "data")

LOGGER = logging.getLogger(__name__)


def load_raw_repos(path: str | Path | None = None) -> list[RawRepo]:
    """Read the raw starred-repo list. Missing or malformed input is an error."""
    path = Path(path or RAW_REPOS_PATH)
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError(f"Expected a JSON array in {path}")

    repos: list[RawRepo] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        repo = RawRepo.from_dict(item)
        if not repo.full_name:
            LOGGER.warning("Skipping raw record without fullName: %s", item.get("name") or item)
            continue
        repos.append(repo)

    LOGGER.info("Loaded %s raw repos from %s", len(repos), path)
    return repos


def read_analyzed_payload(path: str | Path | None = None) -> list[Any]:
    """Read the analyzed store as stored, treating a missing or unreadable file as empty."""
    path = Path(path or ANALYZED_PATH)
    if not path.exists():
        LOGGER.info("No analyzed store at %s; running a full analysis", path)
        return []

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        LOGGER.warning("Could not load analyzed store %s, running a full analysis: %s", path, exc)
        return []

    if not isinstance(payload, list):
        LOGGER.warning("Analyzed store %s is not a JSON array, running a full analysis", path)
        return []
    return payload


def analyzed_records(payload: Iterable[Any]) -> list[AnalyzedRepo]:
    """Entries of a loaded store that carry a fullName, as AnalyzedRepo values."""
    return [
        AnalyzedRepo.from_dict(item)
        for item in payload
        if isinstance(item, dict) and isinstance(item.get("fullName"), str)
    ]


def load_analyzed(path: str | Path | None = None) -> list[AnalyzedRepo]:
    return analyzed_records(read_analyzed_payload(path))


def save_analyzed(
    records: Iterable[AnalyzedRepo],
    path: str | Path | None = None,
    previous: Sequence[Any] = (),
) -> Path:
    """Write the analyzed store: previous entries exactly as loaded, then records."""
    path = Path(path or ANALYZED_PATH)
    _write_json(path, [*previous, *(record.to_dict() for record in records)])
    return path


def write_failed_batch(offset: int, batch: Sequence[RawRepo], directory: str | Path | None = None) -> Path:
    """Snapshot a failed batch's inputs for manual inspection or retry."""
    path = Path(directory or FAILED_BATCH_DIR) / f"failed-batch-{offset}.json"
    _write_json(path, [repo.to_dict() for repo in batch])
    LOGGER.info("Wrote %s failed repos to %s", len(batch), path)
    return path


def _write_json(path: Path, payload: Any) -> None:
    # Write beside the target and rename, so a crash never leaves a truncated file.
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp.replace(path)
    finally:
        tmp.unlink(missing_ok=True)
