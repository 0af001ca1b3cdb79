"""Corpus source: keyed bag-of-words documents over a fixed vocabulary.

Corpora are persisted as Matrix Market files (gensim's ``MmCorpus``). Document
IDs are the global running index across the input files, so they are unique,
non-negative, and define window membership by numeric range.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

import numpy as np
from gensim.corpora import MmCorpus
from gensim.matutils import MmWriter

logger = logging.getLogger(__name__)


class CorpusMismatchError(ValueError):
    """Declared corpus size disagrees with the documents actually present."""


class CorpusMismatchWarning(UserWarning):
    """Non-strict counterpart of :class:`CorpusMismatchError`."""


@dataclass(frozen=True, eq=False)
class Document:
    """One immutable bag-of-words document."""

    doc_id: int
    term_ids: np.ndarray
    term_counts: np.ndarray

    @classmethod
    def from_bow(cls, doc_id: int, bow: Iterable[tuple[int, float]]) -> Document:
        """Build a document from gensim ``[(term_id, count), ...]`` pairs."""
        if doc_id < 0:
            raise ValueError(f"document ids must be >= 0, got {doc_id}")
        pairs = [(int(t), float(c)) for t, c in bow if c > 0]
        ids = np.array([t for t, _ in pairs], dtype=np.int64)
        counts = np.array([c for _, c in pairs], dtype=np.float64)
        return cls(doc_id=doc_id, term_ids=ids, term_counts=counts)

    @property
    def num_tokens(self) -> float:
        return float(self.term_counts.sum())

    def to_bow(self) -> list[tuple[int, float]]:
        return list(zip(self.term_ids.tolist(), self.term_counts.tolist()))


@dataclass
class CorpusSummary:
    """Shape of a loaded corpus, logged before training starts."""

    num_documents: int
    vocab_size: int
    num_tokens: float
    preprocess_seconds: float


# ── Loading ───────────────────────────────────────────────────────────


def load_corpus(paths: Sequence[str | Path]) -> tuple[list[Document], int]:
    """Read one or more Matrix Market corpora into keyed documents.

    Parameters
    ----------
    paths : Sequence[str | Path]
        Matrix Market files. All must share one vocabulary size.

    Returns
    -------
    tuple[list[Document], int]
        Documents with running IDs, and the vocabulary size.
    """
    if not paths:
        raise ValueError("at least one corpus path is required")

    documents: list[Document] = []
    vocab_size: int | None = None
    for path in paths:
        mm = MmCorpus(str(path))
        if vocab_size is None:
            vocab_size = mm.num_terms
        elif mm.num_terms != vocab_size:
            raise ValueError(
                f"{path} has {mm.num_terms} terms, expected {vocab_size}"
            )
        start = len(documents)
        for offset, bow in enumerate(mm):
            documents.append(Document.from_bow(start + offset, bow))
        logger.info(f"Loaded {len(documents) - start} documents from {path}")

    return documents, int(vocab_size)


def save_corpus(path: str | Path, documents: Iterable[Document], vocab_size: int) -> None:
    """Write documents (ordered by ID) as a Matrix Market corpus.

    Matrix Market rows are positional, so IDs must be exactly ``0 .. n-1``;
    anything else would be renumbered on load and change window membership.
    """
    ordered = sorted(documents, key=lambda d: d.doc_id)
    for position, doc in enumerate(ordered):
        if doc.doc_id != position:
            raise ValueError(
                f"{path}: document ids must run 0..{len(ordered) - 1} without gaps "
                f"or duplicates, found id {doc.doc_id} at row {position}"
            )
    MmWriter.write_corpus(str(path), (d.to_bow() for d in ordered), num_terms=vocab_size)


def summarize_corpus(
    documents: Sequence[Document], vocab_size: int, preprocess_seconds: float = 0.0
) -> CorpusSummary:
    summary = CorpusSummary(
        num_documents=len(documents),
        vocab_size=vocab_size,
        num_tokens=float(sum(d.num_tokens for d in documents)),
        preprocess_seconds=preprocess_seconds,
    )
    logger.info("Corpus summary:")
    logger.info(f"\t Training set size: {summary.num_documents} documents")
    logger.info(f"\t Vocabulary size: {summary.vocab_size} terms")
    logger.info(f"\t Training set size: {summary.num_tokens:.0f} tokens")
    logger.info(f"\t Preprocessing time: {summary.preprocess_seconds:.3f} sec")
    return summary


def check_corpus_size(
    declared: int, documents: Sequence[Document], strict: bool = False
) -> bool:
    """Compare the declared corpus size with the document-ID range.

    Returns True when they agree. A mismatch warns (or raises
    :class:`CorpusMismatchError` when ``strict``).
    """
    actual = max((d.doc_id for d in documents), default=-1) + 1
    if actual == declared:
        return True
    message = (
        f"declared corpus_size={declared} but document ids span [0, {actual}); "
        "windows may be empty or truncated"
    )
    report_mismatch(message, strict)
    return False


def report_mismatch(message: str, strict: bool) -> None:
    if strict:
        raise CorpusMismatchError(message)
    logger.warning(message)
    warnings.warn(message, CorpusMismatchWarning, stacklevel=3)
