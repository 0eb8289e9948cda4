"""Keyword-based scoring of assistant answers against an expected-answer checklist."""

import re
from dataclasses import dataclass, field
from typing import List, Sequence

RLE = "\u202b"
PDF = "\u202c"
_HEBREW = re.compile("[\u0590-\u05ff]")
_IGNORED = re.compile(r"[\s\-_]")


def wrap_rtl(text: str) -> str:
    """Wrap Hebrew text in right-to-left embedding marks for terminal output."""
    if _HEBREW.search(text):
        return f"{RLE}{text}{PDF}"
    return text


def _normalize(text: str) -> str:
    return _IGNORED.sub("", text.lower())


def _presence(answer: str, phrases: Sequence[str]) -> List[bool]:
    normalized = _normalize(answer)
    return [_normalize(phrase) in normalized for phrase in phrases]


@dataclass
class EvaluationResult:
    must_contain: List[bool] = field(default_factory=list)
    should_contain: List[bool] = field(default_factory=list)
    should_not_contain: List[bool] = field(default_factory=list)

    @property
    def must_contain_matches(self) -> int:
        return sum(self.must_contain)

    @property
    def should_contain_matches(self) -> int:
        return sum(self.should_contain)

    @property
    def should_not_contain_matches(self) -> int:
        return sum(self.should_not_contain)

    @property
    def passed(self) -> bool:
        return all(self.must_contain) and not any(self.should_not_contain)

    def summary(self) -> dict:
        return {
            "must_contain": f"{self.must_contain_matches}/{len(self.must_contain)}",
            "should_contain": f"{self.should_contain_matches}/{len(self.should_contain)}",
            "should_not_contain": f"{self.should_not_contain_matches}/{len(self.should_not_contain)}",
            "passed": self.passed,
        }


def evaluate_answer(
    answer: str,
    must_contain: Sequence[str] = (),
    should_contain: Sequence[str] = (),
    should_not_contain: Sequence[str] = (),
) -> EvaluationResult:
    """Match phrases case-insensitively, ignoring whitespace, dashes and underscores."""
    return EvaluationResult(
        must_contain=_presence(answer, must_contain),
        should_contain=_presence(answer, should_contain),
        should_not_contain=_presence(answer, should_not_contain),
    )
