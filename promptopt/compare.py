"""Text comparison between prompt versions."""

from __future__ import annotations

import difflib
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal

ChangeType = Literal["added", "removed", "unchanged"]
Granularity = Literal["word", "char"]

_WORD_TOKENS = re.compile(r"\s+|\w+|[^\w\s]", re.UNICODE)


class CompareError(Exception):
    """Base error for text comparison."""


class CompareValidationError(CompareError):
    pass


@dataclass
class TextFragment:
    text: str
    type: ChangeType
    index: int


@dataclass
class CompareResult:
    """Fragments in reading order plus per-type fragment counts."""

    fragments: List[TextFragment] = field(default_factory=list)
    additions: int = 0
    deletions: int = 0
    unchanged: int = 0
    similarity: float = 100.0  # 0-100

    @property
    def summary(self) -> Dict[str, int]:
        return {"additions": self.additions, "deletions": self.deletions, "unchanged": self.unchanged}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fragments": [{"text": f.text, "type": f.type, "index": f.index} for f in self.fragments],
            "summary": self.summary,
            "similarity": round(self.similarity, 1),
        }


def _tokenize(text: str, granularity: str) -> List[str]:
    if granularity == "char":
        return list(text)
    return _WORD_TOKENS.findall(text)


def compare_texts(
    original: str,
    optimized: str,
    granularity: Granularity = "word",
    ignore_whitespace: bool = False,
    case_sensitive: bool = True,
) -> CompareResult:
    """
    Diff two texts into added/removed/unchanged fragments.

    Args:
        original: Text before the change
        optimized: Text after the change
        granularity: "word" (words, whitespace runs and punctuation) or "char"
        ignore_whitespace: Collapse whitespace runs and trim before diffing
        case_sensitive: When False both texts are lower-cased first

    Raises:
        CompareValidationError: Either input is not a string or granularity is unknown
    """
    if not isinstance(original, str):
        raise CompareValidationError("Original text must be a string")
    if not isinstance(optimized, str):
        raise CompareValidationError("Optimized text must be a string")
    if granularity not in ("word", "char"):
        raise CompareValidationError(f"Unknown granularity: {granularity}")

    if ignore_whitespace:
        original = re.sub(r"\s+", " ", original).strip()
        optimized = re.sub(r"\s+", " ", optimized).strip()
    if not case_sensitive:
        original = original.lower()
        optimized = optimized.lower()

    a = _tokenize(original, granularity)
    b = _tokenize(optimized, granularity)
    matcher = difflib.SequenceMatcher(None, a, b, autojunk=False)

    pieces: List[tuple] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            pieces.append(("unchanged", "".join(b[j1:j2])))
        if tag in ("delete", "replace"):
            pieces.append(("removed", "".join(a[i1:i2])))
        if tag in ("insert", "replace"):
            pieces.append(("added", "".join(b[j1:j2])))

    result = CompareResult(similarity=matcher.ratio() * 100.0)
    for change, text in pieces:
        if result.fragments and result.fragments[-1].type == change:
            result.fragments[-1].text += text
            continue
        result.fragments.append(TextFragment(text=text, type=change, index=len(result.fragments)))

    for fragment in result.fragments:
        if fragment.type == "added":
            result.additions += 1
        elif fragment.type == "removed":
            result.deletions += 1
        else:
            result.unchanged += 1
    return result


def unified_diff(original: str, optimized: str, context_lines: int = 3) -> List[str]:
    """Line-based unified diff, for terminal display."""
    return list(
        difflib.unified_diff(
            original.splitlines(),
            optimized.splitlines(),
            fromfile="original",
            tofile="optimized",
            lineterm="",
            n=context_lines,
        )
    )


__all__ = [
    "CompareError",
    "CompareValidationError",
    "CompareResult",
    "TextFragment",
    "compare_texts",
    "unified_diff",
]
