"""Classification prompt and best-effort parsing of the model reply."""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from json import JSONDecodeError
from typing import Any

from errors import ResponseFormatError
from models import AnalyzedRepo, RawRepo

README_PREVIEW_CHARS = 300

# Grouped for readability in the prompt; order is stable.
TAXONOMY_GROUPS: dict[str, tuple[str, ...]] = {
    "AI & ML": ("LLM", "AI Agent", "Machine Learning", "Computer Vision", "NLP"),
    "Developer Tools": ("CLI", "DevTools", "Editor", "Build Tools", "Testing"),
    "Web Development": ("Frontend", "UI Components", "Full-Stack"),
    "Backend & Infrastructure": ("Backend", "Database", "DevOps", "Cloud", "Security"),
    "Cross-Platform": ("Mobile", "Desktop"),
    "Data & Content": ("Data Processing", "Visualization", "CMS", "Scraping"),
    "Specialized": ("Web3", "Network", "System Tools", "Learning", "Algorithm", "Awesome List"),
}

TAXONOMY: tuple[str, ...] = tuple(label for group in TAXONOMY_GROUPS.values() for label in group)
_TAXONOMY_SET: frozenset[str] = frozenset(TAXONOMY)

_FEW_SHOT_EXAMPLES = """Input: langchain-ai/langchain - Build context-aware reasoning applications
Output: {"fullName": "langchain-ai/langchain", "category": "LLM", "aiSummary": "Python framework for building context-aware reasoning applications on top of many LLMs, with tool and retrieval integrations."}

Input: vercel/next.js - The React Framework for the Web
Output: {"fullName": "vercel/next.js", "category": "Full-Stack", "aiSummary": "React-based full-stack framework with SSR, SSG and API routes; a default choice for modern web apps."}

Input: sindresorhus/awesome - Awesome lists about all kinds of interesting topics
Output: {"fullName": "sindresorhus/awesome", "category": "Awesome List", "aiSummary": "The index of curated Awesome lists covering programming, tooling and learning resources."}

Input: nicehash/NiceHashMiner - Mining made easy
Output: {"fullName": "nicehash/NiceHashMiner", "category": "Web3", "aiSummary": "Desktop crypto-mining client that picks the most profitable algorithm and pool automatically."}"""


def build_classification_prompt(repos: Sequence[RawRepo]) -> str:
    """Build one prompt that classifies every repo in the batch."""
    taxonomy = "\n\n".join(
        f"### {group}\n" + "\n".join(f"- {label}" for label in labels)
        for group, labels in TAXONOMY_GROUPS.items()
    )
    entries = "\n".join(_format_repo(index, repo) for index, repo in enumerate(repos, start=1))

    return f"""# Task: GitHub repository classification

You are an expert at categorizing software projects. For every repository below,
pick the **single best category** and write a short summary.

## Categories ({len(TAXONOMY)} total, names must match exactly)

{taxonomy}

## Examples

{_FEW_SHOT_EXAMPLES}

## Repositories to classify
{entries}
## Output format

Return a JSON array with one object per repository:
- fullName: the repository full name, exactly as given
- category: **exactly one** category name from the list above
- aiSummary: a concise English summary (one or two sentences, 30-60 words)

```json
[
  {{"fullName": "owner/repo", "category": "Category name", "aiSummary": "Summary..."}}
]
```

Rules:
1. Each repository gets **exactly one** category.
2. Category names must match the list above **exactly**.
3. Return results for **all {len(repos)} repositories**.
"""


def _format_repo(index: int, repo: RawRepo) -> str:
    readme = repo.readme_preview[:README_PREVIEW_CHARS]
    return (
        f"\n[{index}] {repo.full_name}\n"
        f"Description: {repo.description or 'none'}\n"
        f"Language: {repo.language or 'unknown'}\n"
        f"Topics: {', '.join(repo.topics) or 'none'}\n"
        f"README: {readme or 'none'}\n"
    )


def parse_classification_response(content: str) -> list[AnalyzedRepo]:
    """Parse the model reply into analyzed records.

    The reply may wrap the array in prose or a code fence; the first JSON
    array of objects found is used. Raises ResponseFormatError when there is
    no such array or an entry lacks a fullName.
    """
    items = _extract_first_json_array(content)

    parsed: list[AnalyzedRepo] = []
    for position, item in enumerate(items):
        full_name = item.get("fullName")
        if not isinstance(full_name, str) or not full_name.strip():
            raise ResponseFormatError(f"Result #{position + 1} has no fullName: {item}")
        parsed.append(
            AnalyzedRepo(
                full_name=full_name.strip(),
                categories=_categories(item),
                tags=_string_list(item.get("tags")),
                ai_summary=_as_text(item.get("aiSummary")),
            )
        )
    return parsed


def unknown_categories(records: Iterable[AnalyzedRepo]) -> list[tuple[str, str]]:
    """Return (fullName, category) pairs whose category is not in TAXONOMY."""
    return [
        (record.full_name, category)
        for record in records
        for category in record.categories
        if category not in _TAXONOMY_SET
    ]


def _extract_first_json_array(content: str) -> list[dict[str, Any]]:
    """Extract the first decodable JSON array of objects from an arbitrary string."""
    if not content or not content.strip():
        raise ResponseFormatError("Model returned an empty response")

    decoder = json.JSONDecoder()
    for index, char in enumerate(content):
        if char != "[":
            continue
        try:
            candidate, _ = decoder.raw_decode(content[index:])
        except JSONDecodeError:
            continue
        if isinstance(candidate, list) and all(isinstance(item, dict) for item in candidate):
            return candidate
    raise ResponseFormatError("Could not extract a JSON array from model output")


def _categories(item: dict[str, Any]) -> tuple[str, ...]:
    category = _as_text(item.get("category"))
    if category:
        return (category,)
    return _string_list(item.get("categories"))


def _string_list(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(v.strip() for v in value if isinstance(v, str) and v.strip())


def _as_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""
