"""Shared fixtures: small synthetic bag-of-words corpora and configs."""

from __future__ import annotations

import numpy as np
import pytest

from topicstream.config import TrainingConfig
from topicstream.corpus import Document

VOCAB_SIZE = 20


def _make_documents(num_docs: int, vocab_size: int = VOCAB_SIZE, seed: int = 0, start: int = 0):
    rng = np.random.default_rng(seed)
    docs = []
    for doc_id in range(start, start + num_docs):
        n_terms = int(rng.integers(2, 7))
        ids = rng.choice(vocab_size, size=n_terms, replace=False)
        counts = rng.integers(1, 5, size=n_terms)
        docs.append(Document.from_bow(doc_id, zip(ids.tolist(), counts.tolist())))
    return docs


@pytest.fixture
def make_documents():
    """Factory for reproducible documents with ids ``start .. start+n-1``."""
    return _make_documents


@pytest.fixture
def documents():
    return _make_documents(30)


@pytest.fixture
def lda_config():
    return TrainingConfig(
        k=3,
        vocab_size=VOCAB_SIZE,
        window_size=10,
        corpus_size=30,
        partition_count=2,
        ps_count=2,
        max_iterations=2,
        max_inner_iterations=5,
        checkpoint_interval=0,
    )


@pytest.fixture
def hdp_config():
    return TrainingConfig(
        model="hdp",
        k=3,
        truncation=5,
        doc_concentration=1.0,
        topic_concentration=0.01,
        vocab_size=VOCAB_SIZE,
        window_size=10,
        corpus_size=30,
        partition_count=2,
        ps_count=2,
        max_iterations=2,
        max_inner_iterations=5,
        checkpoint_interval=0,
    )
