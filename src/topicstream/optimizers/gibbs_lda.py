"""Approximate distributed collapsed Gibbs sampling for LDA (AD-LDA).

Topic-term counts live on the parameter server. Each partition resamples
its documents' token assignments against one snapshot of the counts and the
driver pushes the summed count deltas once the barrier is reached.
Assignments are kept only for documents of the current batch.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, NamedTuple

import numpy as np
from scipy.special import gammaln

from topicstream.model import LDAModel
from topicstream.optimizers.base import Accumulator, OptimizerState, Score, as_lookup, batch_tokens
from topicstream.param_server import ServerModel, gibbs_server_model

if TYPE_CHECKING:
    from topicstream.config import TrainingConfig
    from topicstream.corpus import Document
    from topicstream.dataset import DistributedDataset

logger = logging.getLogger(__name__)


class DocAssignments(NamedTuple):
    doc_id: int
    assignments: np.ndarray
    doc_topic: np.ndarray


def expand_tokens(doc: Document) -> np.ndarray:
    """Term id of every token occurrence (counts rounded to integers)."""
    counts = np.rint(doc.term_counts).astype(np.int64)
    return np.repeat(doc.term_ids, counts)


class GibbsLDAOptimizer(OptimizerState):
    name = "gibbs"

    def __init__(self, config: TrainingConfig):
        super().__init__(config)
        self._assignments: dict[int, np.ndarray] = {}

    def server_model(self) -> ServerModel:
        return gibbs_server_model(self.config.vocab_size, self.config.k)

    def _sample_document(
        self,
        doc: Document,
        nwk: np.ndarray,
        nk: np.ndarray,
        delta: np.ndarray,
        rng: np.random.Generator,
    ) -> DocAssignments:
        k, alpha, eta = self.config.k, self.config.alpha, self.config.eta
        w_eta = nwk.shape[1] * eta
        words = expand_tokens(doc)
        z = self._assignments.get(doc.doc_id)
        if z is None or len(z) != len(words):
            z = rng.integers(k, size=len(words))
            np.add.at(nwk, (z, words), 1)
            np.add.at(delta, (z, words), 1)
            np.add.at(nk, z, 1)
        else:
            z = z.copy()
        ndk = np.bincount(z, minlength=k).astype(np.float64)

        for _ in range(self.config.max_inner_iterations):
            for i, w in enumerate(words):
                t = z[i]
                ndk[t] -= 1
                nwk[t, w] -= 1
                nk[t] -= 1
                delta[t, w] -= 1
                p = (ndk + alpha) * np.maximum(nwk[:, w] + eta, 1e-12) / (nk + w_eta)
                cdf = np.cumsum(p)
                t = min(int(np.searchsorted(cdf, rng.random() * cdf[-1])), k - 1)
                z[i] = t
                ndk[t] += 1
                nwk[t, w] += 1
                nk[t] += 1
                delta[t, w] += 1
        return DocAssignments(doc.doc_id, z, ndk)

    def next(self, batch: DistributedDataset) -> DistributedDataset:
        counts = self.server.pull("counts")
        accumulator = Accumulator(counts.shape)

        def sweep(index: int, docs: list[Document]) -> list[DocAssignments]:
            rng = self._rng(index)
            nwk = counts.copy()
            nk = nwk.sum(axis=1)
            delta = np.zeros(counts.shape)
            out = [self._sample_document(doc, nwk, nk, delta, rng) for doc in docs]
            accumulator.add(delta)
            return out

        diagnostics, batch_size = self._materialize(batch.map_partitions(sweep))
        self._assignments = {r.doc_id: r.assignments for r in diagnostics.collect()}
        if batch_size == 0:
            logger.debug("Empty batch, no update committed")
            return diagnostics

        self.server.push("counts", accumulator.value)
        self._updates += 1
        logger.debug(f"Committed Gibbs count update {self._updates}")
        return diagnostics

    def perplexity(self, batch: DistributedDataset, diagnostics: DistributedDataset) -> Score:
        tokens = batch_tokens(batch)
        if tokens == 0:
            return Score(0.0, 0.0)

        counts = self.server.pull("counts")
        k, alpha, eta = self.config.k, self.config.alpha, self.config.eta
        phi = (counts + eta) / (counts.sum(axis=1, keepdims=True) + counts.shape[1] * eta)
        records = as_lookup(diagnostics)

        def log_likelihood(index: int, docs: list[Document]) -> list[float]:
            total = 0.0
            for doc in docs:
                ndk = records[doc.doc_id].doc_topic
                theta = (ndk + alpha) / (ndk.sum() + k * alpha)
                total += float(doc.term_counts @ np.log(theta @ phi[:, doc.term_ids]))
            return [total]

        document = sum(batch.map_partitions(log_likelihood).collect())
        return Score(-document / tokens, self.topic_perplexity(counts) / tokens)

    def topic_perplexity(self, counts: np.ndarray | None = None) -> float:
        """Negative collapsed ``log p(w | z)`` of the topic-term counts."""
        if counts is None:
            counts = self.server.pull("counts")
        eta, vocab = self.config.eta, counts.shape[1]
        ll = counts.shape[0] * (gammaln(vocab * eta) - vocab * gammaln(eta))
        ll += np.sum(gammaln(counts + eta)) - np.sum(gammaln(counts.sum(axis=1) + vocab * eta))
        return float(-ll)

    def build_model(self) -> LDAModel:
        return LDAModel(
            topic_term=self.server.pull("counts") + self.config.eta,
            alpha=self.config.alpha,
            eta=self.config.eta,
        )
