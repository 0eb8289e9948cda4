import re
from typing import Sequence

from app.services.knowledge_service import KnowledgeEntry

# [source 2], [Source: 2], [[2]], {{source_2}}
PLACEHOLDER_PATTERN = re.compile(
    r"\[\s*source\s*:?\s*(\d+)\s*\]|\[\[\s*(\d+)\s*\]\]|\{\{\s*source_(\d+)\s*\}\}",
    re.IGNORECASE,
)
BLANK_LINES_PATTERN = re.compile(r"\n{3,}")
SPACE_BEFORE_PUNCT_PATTERN = re.compile(r"[ \t]+([.,!?;:])")


def _describe(entry: KnowledgeEntry) -> str:
    if entry.source and entry.source != "unknown":
        return f"{entry.title} ({entry.source})"
    return entry.title


def normalize_assistant_reply(text: str, entries: Sequence[KnowledgeEntry]) -> str:
    """Resolve source placeholders to the knowledge entries used and tidy whitespace."""

    def replace(match: re.Match) -> str:
        number = int(next(group for group in match.groups() if group))
        if 1 <= number <= len(entries):
            return _describe(entries[number - 1])
        return ""

    normalized = PLACEHOLDER_PATTERN.sub(replace, text)
    normalized = SPACE_BEFORE_PUNCT_PATTERN.sub(r"\1", normalized)
    normalized = re.sub(r"[ \t]{2,}", " ", normalized)
    normalized = BLANK_LINES_PATTERN.sub("\n\n", normalized)
    return normalized.strip()
