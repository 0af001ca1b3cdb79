"""Online variational Bayes for LDA (Hoffman, Blei & Bach, 2010).

Each update runs the per-document E-step on every partition against one
snapshot of ``lambda``, sums the partitions' sufficient statistics, and
commits ``lambda += rho * (eta + D/|batch| * sstats - lambda)`` to the
parameter server in a single push.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, NamedTuple

import numpy as np
from gensim.matutils import dirichlet_expectation
from scipy.special import gammaln, logsumexp

from topicstream.model import LDAModel
from topicstream.optimizers.base import Accumulator, OptimizerState, Score, as_lookup, batch_tokens
from topicstream.param_server import ServerModel, lda_server_model

if TYPE_CHECKING:
    from topicstream.corpus import Document
    from topicstream.dataset import DistributedDataset

logger = logging.getLogger(__name__)

# mean absolute change in gamma below which the E-step stops early
GAMMA_THRESHOLD = 1e-3


class DocGamma(NamedTuple):
    doc_id: int
    gamma: np.ndarray


class OnlineLDAOptimizer(OptimizerState):
    name = "online"

    def server_model(self) -> ServerModel:
        return lda_server_model(self.config.vocab_size, self.config.k, seed=self.config.seed)

    def _e_step(
        self,
        doc: Document,
        exp_elog_beta: np.ndarray,
        rng: np.random.Generator,
        sstats: np.ndarray,
    ) -> np.ndarray:
        """Fit one document's gamma and add its statistics to ``sstats``."""
        alpha = self.config.alpha
        ids, cts = doc.term_ids, doc.term_counts
        gammad = rng.gamma(100.0, 1.0 / 100.0, self.config.k)
        exp_elog_thetad = np.exp(dirichlet_expectation(gammad))
        exp_elog_betad = exp_elog_beta[:, ids]
        # phi_{dwk} is proportional to expElogtheta_k * expElogbeta_kw
        phinorm = exp_elog_thetad @ exp_elog_betad + 1e-100
        for _ in range(self.config.max_inner_iterations):
            last = gammad
            gammad = alpha + exp_elog_thetad * ((cts / phinorm) @ exp_elog_betad.T)
            exp_elog_thetad = np.exp(dirichlet_expectation(gammad))
            phinorm = exp_elog_thetad @ exp_elog_betad + 1e-100
            if np.mean(np.abs(gammad - last)) < GAMMA_THRESHOLD:
                break
        sstats[:, ids] += np.outer(exp_elog_thetad, cts / phinorm)
        return gammad

    def next(self, batch: DistributedDataset) -> DistributedDataset:
        lam = self.server.pull("lambda")
        exp_elog_beta = np.exp(dirichlet_expectation(lam))
        accumulator = Accumulator(lam.shape)

        def infer(index: int, docs: list[Document]) -> list[DocGamma]:
            rng = self._rng(index)
            sstats = np.zeros(lam.shape)
            out = [DocGamma(doc.doc_id, self._e_step(doc, exp_elog_beta, rng, sstats)) for doc in docs]
            accumulator.add(sstats)
            return out

        diagnostics, batch_size = self._materialize(batch.map_partitions(infer))
        if batch_size == 0:
            logger.debug("Empty batch, no update committed")
            return diagnostics

        # completes the statistics: sstats[k, w] = sum_d n_dw * phi_dwk
        sstats = accumulator.value * exp_elog_beta
        rho = self.rho()
        target = self.config.eta + self.corpus_scale(batch_size) * sstats
        self.server.push("lambda", rho * (target - lam))
        self._updates += 1
        logger.debug(f"Committed online LDA update {self._updates} (rho={rho:.4g})")
        return diagnostics

    def perplexity(self, batch: DistributedDataset, diagnostics: DistributedDataset) -> Score:
        tokens = batch_tokens(batch)
        if tokens == 0:
            return Score(0.0, 0.0)

        lam = self.server.pull("lambda")
        elog_beta = dirichlet_expectation(lam)
        gammas = as_lookup(diagnostics)
        alpha, k = self.config.alpha, self.config.k

        def doc_bound(index: int, docs: list[Document]) -> list[float]:
            total = 0.0
            for doc in docs:
                gammad = gammas[doc.doc_id].gamma
                elog_thetad = dirichlet_expectation(gammad)
                # E[log p(docs | theta, beta)]
                log_phinorm = logsumexp(elog_thetad[:, np.newaxis] + elog_beta[:, doc.term_ids], axis=0)
                total += float(doc.term_counts @ log_phinorm)
                # E[log p(theta | alpha) - log q(theta | gamma)]
                total += float(np.sum((alpha - gammad) * elog_thetad))
                total += float(np.sum(gammaln(gammad) - gammaln(alpha)))
                total += float(gammaln(alpha * k) - gammaln(np.sum(gammad)))
            return [total]

        document = sum(batch.map_partitions(doc_bound).collect())
        return Score(-document / tokens, self.topic_perplexity(lam, elog_beta) / tokens)

    def topic_perplexity(self, lam: np.ndarray | None = None, elog_beta: np.ndarray | None = None) -> float:
        """Negative ``E[log p(beta | eta) - log q(beta | lambda)]``."""
        if lam is None:
            lam = self.server.pull("lambda")
        if elog_beta is None:
            elog_beta = dirichlet_expectation(lam)
        eta, vocab = self.config.eta, lam.shape[1]
        bound = np.sum((eta - lam) * elog_beta)
        bound += np.sum(gammaln(lam) - gammaln(eta))
        bound += np.sum(gammaln(eta * vocab) - gammaln(np.sum(lam, 1)))
        return float(-bound)

    def build_model(self) -> LDAModel:
        return LDAModel(
            topic_term=self.server.pull("lambda"),
            alpha=self.config.alpha,
            eta=self.config.eta,
        )
