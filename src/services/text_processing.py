"""Turn recognised OCR lines into the text handed to speech synthesis."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from src.errors import InternalPipelineError
from src.services.job_poller import AnalysisResult, AnalysisState

LINE_SEPARATOR = "\n"


@dataclass(frozen=True, slots=True)
class BoundedText:
    text: str
    original_length: int
    bounded_length: int

    @property
    def truncated(self) -> bool:
        return self.bounded_length < self.original_length


def assemble_pages(pages: Iterable[Sequence[str]]) -> str:
    """Join lines in page order, then line order, one per line."""
    return LINE_SEPARATOR.join(line for page in pages for line in page)


def assemble_text(result: AnalysisResult) -> str:
    if result.state is not AnalysisState.SUCCEEDED:
        raise InternalPipelineError(
            f"Cannot assemble text from a {result.state.value} analysis result",
            stage="assembling",
        )
    return assemble_pages(result.pages)


def bound_text(text: str, max_chars: int) -> BoundedText:
    """Cut ``text`` to at most ``max_chars`` characters.

    This is a hard cut; it may split a word or sentence.
    """
    limit = max(0, max_chars)
    bounded = text[:limit]
    return BoundedText(text=bounded, original_length=len(text), bounded_length=len(bounded))


__all__ = ["BoundedText", "LINE_SEPARATOR", "assemble_pages", "assemble_text", "bound_text"]
