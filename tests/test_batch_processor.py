"""Tests for the incremental batch analysis (batch_processor.run_analysis)."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

import batch_processor
from batch_processor import find_new_repos, partition, run_analysis
from errors import ProviderInvocationError
from models import AnalyzedRepo, RawRepo
from provider_base import AnalysisProvider


class FakeProvider(AnalysisProvider):
    """Replays canned replies; an Exception entry is raised instead of returned."""

    name = "Fake"

    def __init__(self, replies: list[object] | None = None) -> None:
        super().__init__("test-key", "fake-model")
        self.replies = list(replies or [])
        self.prompts: list[str] = []

    async def analyze(self, prompt: str) -> str:
        self.prompts.append(prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class EchoProvider(AnalysisProvider):
    """Classifies every repo named in the prompt as CLI."""

    name = "Echo"

    def __init__(self) -> None:
        super().__init__("test-key", "echo")
        self.calls = 0

    async def analyze(self, prompt: str) -> str:
        self.calls += 1
        names = [line.split("] ", 1)[1] for line in prompt.splitlines() if line.startswith("[") and "] " in line]
        return json.dumps([{"fullName": n, "category": "CLI", "aiSummary": f"summary of {n}"} for n in names])


def _repo(full_name: str, stars: int = 1) -> RawRepo:
    return RawRepo.from_dict({"id": stars, "name": full_name.split("/")[-1], "fullName": full_name, "stars": stars})


def _reply(*names: str) -> str:
    return json.dumps([{"fullName": n, "category": "CLI", "aiSummary": n} for n in names])


def _run(provider: AnalysisProvider, raw: list[RawRepo], tmp_path: Path, **kwargs: object):
    return asyncio.run(
        run_analysis(
            provider,
            raw_repos=raw,
            analyzed_path=tmp_path / "analyzed.json",
            failed_dir=tmp_path,
            delay_seconds=0,
            **kwargs,
        )
    )


def _write_store(tmp_path: Path, records: list[dict]) -> Path:
    path = tmp_path / "analyzed.json"
    path.write_text(json.dumps(records, indent=2), encoding="utf-8")
    return path


def _store(tmp_path: Path) -> list[dict]:
    return json.loads((tmp_path / "analyzed.json").read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# Diff and partition
# ---------------------------------------------------------------------------

def test_find_new_repos_is_keyed_by_full_name() -> None:
    raw = [_repo("a/one"), _repo("b/two"), _repo("c/three")]
    existing = [AnalyzedRepo(full_name="b/two")]
    assert [r.full_name for r in find_new_repos(raw, existing)] == ["a/one", "c/three"]


@pytest.mark.parametrize("count", [0, 1, 9, 10, 11, 25, 30])
def test_partition_covers_every_repo_once(count: int) -> None:
    repos = [_repo(f"o/r{i}") for i in range(count)]
    batches = partition(repos, 10)

    assert len(batches) == -(-count // 10)
    flattened = [r for _, batch in batches for r in batch]
    assert flattened == repos
    assert all(len(batch) == 10 for _, batch in batches[:-1])
    assert all(1 <= len(batch) <= 10 for _, batch in batches)
    assert [offset for offset, _ in batches] == list(range(0, count, 10))


def test_partition_rejects_non_positive_size() -> None:
    with pytest.raises(ValueError):
        partition([_repo("a/b")], 0)


# ---------------------------------------------------------------------------
# Incremental runs
# ---------------------------------------------------------------------------

def test_no_new_repos_makes_no_calls_and_leaves_store_untouched(tmp_path: Path) -> None:
    path = _write_store(
        tmp_path,
        [
            {"fullName": "a/one", "categories": ["CLI"], "tags": [], "aiSummary": "x"},
            {"fullName": "b/two", "categories": ["LLM"], "tags": [], "aiSummary": "y"},
        ],
    )
    before = path.read_bytes()
    provider = FakeProvider()

    summary = _run(provider, [_repo("a/one"), _repo("b/two")], tmp_path)

    assert provider.prompts == []
    assert path.read_bytes() == before
    assert list(tmp_path.glob("failed-batch-*.json")) == []
    assert summary.new == 0
    assert summary.analyzed == 0


def test_missing_store_triggers_full_analysis(tmp_path: Path) -> None:
    provider = FakeProvider([_reply("a/one", "b/two")])

    summary = _run(provider, [_repo("a/one"), _repo("b/two")], tmp_path)

    assert summary.already_analyzed == 0
    assert [r["fullName"] for r in _store(tmp_path)] == ["a/one", "b/two"]
    assert _store(tmp_path)[0] == {"fullName": "a/one", "categories": ["CLI"], "tags": [], "aiSummary": "a/one"}


def test_corrupt_store_is_treated_as_empty(tmp_path: Path) -> None:
    (tmp_path / "analyzed.json").write_text("{not json", encoding="utf-8")
    provider = FakeProvider([_reply("a/one")])

    summary = _run(provider, [_repo("a/one")], tmp_path)

    assert summary.analyzed == 1
    assert [r["fullName"] for r in _store(tmp_path)] == ["a/one"]


def test_only_new_repos_are_sent_and_appended(tmp_path: Path) -> None:
    _write_store(tmp_path, [{"fullName": "a/one", "categories": ["CLI"], "tags": [], "aiSummary": "old"}])
    provider = FakeProvider([_reply("b/two")])

    summary = _run(provider, [_repo("a/one"), _repo("b/two")], tmp_path)

    assert len(provider.prompts) == 1
    assert "b/two" in provider.prompts[0]
    assert "a/one" not in provider.prompts[0]
    assert [r["fullName"] for r in _store(tmp_path)] == ["a/one", "b/two"]
    assert _store(tmp_path)[0]["aiSummary"] == "old"
    assert summary.store_size == 2


def test_batches_of_ten_are_sent_sequentially(tmp_path: Path) -> None:
    provider = EchoProvider()
    raw = [_repo(f"o/r{i}") for i in range(23)]

    summary = _run(provider, raw, tmp_path)

    assert provider.calls == 3
    assert summary.analyzed == 23
    assert [r["fullName"] for r in _store(tmp_path)] == [r.full_name for r in raw]


def test_delay_between_batches(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    delays: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    monkeypatch.setattr(batch_processor.asyncio, "sleep", fake_sleep)
    raw = [_repo(f"o/r{i}") for i in range(21)]

    asyncio.run(
        run_analysis(
            EchoProvider(),
            raw_repos=raw,
            analyzed_path=tmp_path / "analyzed.json",
            failed_dir=tmp_path,
            delay_seconds=1,
        )
    )

    assert delays == [1, 1]


# ---------------------------------------------------------------------------
# Failure isolation
# ---------------------------------------------------------------------------

def test_prose_reply_fails_only_that_batch(tmp_path: Path) -> None:
    raw = [_repo(f"o/r{i}") for i in range(15)]
    first_names = [r.full_name for r in raw[:10]]
    second_names = [r.full_name for r in raw[10:]]
    provider = FakeProvider([
        "Sorry, I cannot help with classifying these repositories.",
        _reply(*second_names),
    ])

    summary = _run(provider, raw, tmp_path)

    artifact = tmp_path / "failed-batch-0.json"
    assert artifact.exists()
    assert [r["fullName"] for r in json.loads(artifact.read_text(encoding="utf-8"))] == first_names
    assert json.loads(artifact.read_text(encoding="utf-8"))[0] == raw[0].to_dict()
    assert len(provider.prompts) == 2
    assert summary.failed_offsets == [0]
    assert [r["fullName"] for r in _store(tmp_path)] == second_names


def test_failed_batch_keeps_earlier_results_from_same_run(tmp_path: Path) -> None:
    raw = [_repo(f"o/r{i}") for i in range(25)]
    provider = FakeProvider([
        _reply(*[r.full_name for r in raw[:10]]),
        ProviderInvocationError("429 rate limited"),
        _reply(*[r.full_name for r in raw[20:]]),
    ])

    summary = _run(provider, raw, tmp_path)

    assert summary.failed_offsets == [10]
    assert (tmp_path / "failed-batch-10.json").exists()
    assert not (tmp_path / "failed-batch-0.json").exists()
    stored = [r["fullName"] for r in _store(tmp_path)]
    assert stored == [r.full_name for r in raw[:10] + raw[20:]]


def test_store_growth_equals_successful_batch_records(tmp_path: Path) -> None:
    _write_store(tmp_path, [{"fullName": "x/old", "categories": [], "tags": [], "aiSummary": ""}])
    raw = [_repo("x/old")] + [_repo(f"o/r{i}") for i in range(12)]
    provider = FakeProvider([
        _reply(*[r.full_name for r in raw[1:11]]),
        RuntimeError("socket closed"),
    ])

    summary = _run(provider, raw, tmp_path)

    assert len(_store(tmp_path)) == 1 + 10
    assert summary.analyzed == 10
    assert summary.failed_offsets == [10]


def test_all_batches_failing_still_persists_previous_store(tmp_path: Path) -> None:
    path = _write_store(tmp_path, [{"fullName": "x/old", "categories": ["CLI"], "tags": [], "aiSummary": "kept"}])
    provider = FakeProvider([ProviderInvocationError("auth failed")])

    summary = _run(provider, [_repo("x/old"), _repo("n/new")], tmp_path)

    assert summary.analyzed == 0
    assert json.loads(path.read_text(encoding="utf-8")) == [
        {"fullName": "x/old", "categories": ["CLI"], "tags": [], "aiSummary": "kept"}
    ]
    assert (tmp_path / "failed-batch-0.json").exists()


def test_retry_attempts_before_marking_batch_failed(tmp_path: Path) -> None:
    provider = FakeProvider([ProviderInvocationError("timeout"), _reply("a/one")])

    summary = _run(provider, [_repo("a/one")], tmp_path, max_attempts=2)

    assert len(provider.prompts) == 2
    assert summary.failed_offsets == []
    assert [r["fullName"] for r in _store(tmp_path)] == ["a/one"]


def test_out_of_taxonomy_category_is_kept(tmp_path: Path) -> None:
    reply = json.dumps([{"fullName": "a/one", "category": "Gardening", "aiSummary": "x"}])
    provider = FakeProvider([reply])

    _run(provider, [_repo("a/one")], tmp_path)

    assert _store(tmp_path)[0]["categories"] == ["Gardening"]


def test_earlier_store_entries_are_kept_verbatim(tmp_path: Path) -> None:
    earlier = [
        {"fullName": "a/one", "categories": ["CLI"], "tags": [], "aiSummary": "x", "extra": 1},
        {"category": "LLM", "aiSummary": "entry written without a fullName"},
        {"fullName": "b/two", "categories": ["LLM", 7], "tags": None, "aiSummary": "y"},
    ]
    _write_store(tmp_path, earlier)
    provider = FakeProvider([_reply("n/new")])

    summary = _run(provider, [_repo("a/one"), _repo("b/two"), _repo("n/new")], tmp_path)

    stored = _store(tmp_path)
    assert len(stored) == len(earlier) + 1
    assert stored[:3] == earlier
    assert stored[3]["fullName"] == "n/new"
    assert summary.already_analyzed == 2
    assert summary.store_size == 4
    assert "a/one" not in provider.prompts[0]


def test_unwritable_failure_dir_does_not_abort_run(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    raw = [_repo(f"o/r{i}") for i in range(12)]
    provider = FakeProvider([
        ProviderInvocationError("rate limited"),
        _reply("o/r10", "o/r11"),
    ])

    summary = asyncio.run(
        run_analysis(
            provider,
            raw_repos=raw,
            analyzed_path=tmp_path / "analyzed.json",
            failed_dir=blocker,
            delay_seconds=0,
        )
    )

    assert summary.failed_offsets == [0]
    assert summary.analyzed == 2
    assert [r["fullName"] for r in _store(tmp_path)] == ["o/r10", "o/r11"]
