from __future__ import annotations

from typing import List

from documate.chunks import prepare_labels
from documate.types import Chunk, DisplayChunk


def _chunks(headers: List[str]) -> List[Chunk]:
    return [Chunk(header=header, body=f"body {idx}", id=f"id-{idx}") for idx, header in enumerate(headers)]


def _labels(display: List[DisplayChunk]) -> List[str]:
    return [chunk.label for chunk in display]


def test_consecutive_repeats_become_parts() -> None:
    labelled = prepare_labels(_chunks(["Intro", "Setup", "Setup", "Setup", "Usage"]))
    assert _labels(labelled) == ["Intro", "Setup", "Setup Part 2", "Setup Part 3", "Usage"]


def test_interrupted_run_restarts_numbering() -> None:
    labelled = prepare_labels(_chunks(["A", "A", "B", "A"]))
    assert _labels(labelled) == ["A", "A Part 2", "B", "A"]


def test_second_run_of_same_header_numbers_from_two_again() -> None:
    labelled = prepare_labels(_chunks(["A", "A", "B", "A", "A"]))
    assert _labels(labelled) == ["A", "A Part 2", "B", "A", "A Part 2"]


def test_empty_and_single_inputs() -> None:
    assert prepare_labels([]) == []

    (only,) = prepare_labels(_chunks(["Overview"]))
    assert only.label == "Overview"
    assert only.header == "Overview"


def test_order_bodies_and_ids_are_preserved() -> None:
    chunks = _chunks(["X", "Y", "X", "X"])
    labelled = prepare_labels(chunks)
    assert [c.id for c in labelled] == [c.id for c in chunks]
    assert [c.body for c in labelled] == [c.body for c in chunks]


def test_header_comparison_is_case_sensitive() -> None:
    labelled = prepare_labels(_chunks(["Title", "title", "title"]))
    assert _labels(labelled) == ["Title", "title", "title Part 2"]


def test_missing_headers_are_treated_as_empty() -> None:
    chunks = [
        Chunk(header=None, body="a", id="1"),  # type: ignore[arg-type]
        Chunk(header="", body="b", id="2"),
    ]
    labelled = prepare_labels(chunks)
    assert _labels(labelled) == ["", " Part 2"]


def test_relabelling_output_is_not_a_fixed_point() -> None:
    """Labels are derived from headers, so feeding labels back in can change them."""
    first = prepare_labels(_chunks(["A", "A", "A Part 2"]))
    assert _labels(first) == ["A", "A Part 2", "A Part 2"]

    second = prepare_labels([Chunk(header=c.label, body=c.body, id=c.id) for c in first])
    assert _labels(second) == ["A", "A Part 2", "A Part 2 Part 2"]
