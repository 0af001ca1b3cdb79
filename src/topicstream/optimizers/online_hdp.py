"""Online variational inference for the HDP (Wang, Paisley & Blei, 2011).

The parameter server holds the topic ``lambda`` (``T x W``) and the
corpus-level stick parameters (``2 x T-1``). Documents use a second-level
truncation of ``k`` sticks.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, NamedTuple

import numpy as np
from gensim.matutils import dirichlet_expectation, ret_log_normalize_vec
from gensim.models.hdpmodel import expect_log_sticks
from scipy.special import gammaln, psi

from topicstream.optimizers.base import Accumulator, OptimizerState, Score, as_lookup, batch_tokens
from topicstream.param_server import ServerModel, hdp_server_model

if TYPE_CHECKING:
    from topicstream.corpus import Document
    from topicstream.dataset import DistributedDataset

logger = logging.getLogger(__name__)

# relative likelihood change that ends a document's E-step
VAR_CONVERGE = 1e-4
# E-step rounds run before the stick priors enter the updates
WARMUP_ROUNDS = 3


class DocLikelihood(NamedTuple):
    doc_id: int
    likelihood: float


class OnlineHDPOptimizer(OptimizerState):
    name = "online-hdp"

    def server_model(self) -> ServerModel:
        return hdp_server_model(
            self.config.vocab_size,
            self.config.truncation,
            self.config.corpus_size or self.config.window_size,
            seed=self.config.seed,
        )

    def _doc_e_step(
        self,
        doc: Document,
        elog_beta: np.ndarray,
        elog_sticks_1st: np.ndarray,
        ss_sticks: np.ndarray,
        ss_beta: np.ndarray,
    ) -> float:
        """Fit one document and add its statistics; return its likelihood bound."""
        k, alpha = self.config.k, self.config.alpha
        ids, counts = doc.term_ids, doc.term_counts
        elog_beta_doc = elog_beta[:, ids]

        v = np.zeros((2, k - 1))
        v[0] = 1.0
        v[1] = alpha
        elog_sticks_2nd = expect_log_sticks(v)
        phi = np.ones((len(ids), k)) / k

        likelihood = 0.0
        old_likelihood = 0.0
        for it in range(self.config.max_inner_iterations):
            var_phi = phi.T @ (elog_beta_doc * counts).T
            if it >= WARMUP_ROUNDS:
                var_phi = var_phi + elog_sticks_1st
            log_var_phi, _ = ret_log_normalize_vec(var_phi)
            var_phi = np.exp(log_var_phi)

            phi = (var_phi @ elog_beta_doc).T
            if it >= WARMUP_ROUNDS:
                phi = phi + elog_sticks_2nd
            log_phi, _ = ret_log_normalize_vec(phi)
            phi = np.exp(log_phi)

            phi_all = phi * counts[:, np.newaxis]
            v[0] = 1.0 + np.sum(phi_all[:, :k - 1], 0)
            phi_cum = np.flipud(np.sum(phi_all[:, 1:], 0))
            v[1] = alpha + np.flipud(np.cumsum(phi_cum))
            elog_sticks_2nd = expect_log_sticks(v)

            # var_phi (C), v, z and data parts of the bound
            likelihood = np.sum((elog_sticks_1st - log_var_phi) * var_phi)
            likelihood += (k - 1) * np.log(alpha)
            dig_sum = psi(np.sum(v, 0))
            likelihood += np.sum((np.array([1.0, alpha])[:, np.newaxis] - v) * (psi(v) - dig_sum))
            likelihood -= np.sum(gammaln(np.sum(v, 0))) - np.sum(gammaln(v))
            likelihood += np.sum((elog_sticks_2nd - log_phi) * phi)
            likelihood += np.sum(phi.T * (var_phi @ (elog_beta_doc * counts)))

            if it > 0:
                converge = (likelihood - old_likelihood) / (abs(old_likelihood) or 1.0)
                if 0.0 <= converge < VAR_CONVERGE:
                    break
            old_likelihood = likelihood

        ss_sticks += np.sum(var_phi, 0)
        ss_beta[:, ids] += var_phi.T @ (phi.T * counts)
        return float(likelihood)

    def next(self, batch: DistributedDataset) -> DistributedDataset:
        lam = self.server.pull("lambda")
        sticks = self.server.pull("sticks")
        truncation = lam.shape[0]
        elog_beta = dirichlet_expectation(lam)
        elog_sticks_1st = expect_log_sticks(sticks)
        acc_sticks = Accumulator((truncation,))
        acc_beta = Accumulator(lam.shape)

        def infer(index: int, docs: list[Document]) -> list[DocLikelihood]:
            ss_sticks = np.zeros(truncation)
            ss_beta = np.zeros(lam.shape)
            out = [
                DocLikelihood(doc.doc_id, self._doc_e_step(doc, elog_beta, elog_sticks_1st, ss_sticks, ss_beta))
                for doc in docs
            ]
            acc_sticks.add(ss_sticks)
            acc_beta.add(ss_beta)
            return out

        diagnostics, batch_size = self._materialize(batch.map_partitions(infer))
        if batch_size == 0:
            logger.debug("Empty batch, no update committed")
            return diagnostics

        rho = self.rho()
        scale = self.corpus_scale(batch_size)
        eta, gamma = self.config.eta, self.config.hdp_gamma
        self.server.push("lambda", rho * (eta + scale * acc_beta.value - lam))

        var_phi_ss = scale * acc_sticks.value
        target = np.empty_like(sticks)
        target[0] = var_phi_ss[:truncation - 1] + 1.0
        target[1] = np.flipud(np.cumsum(np.flipud(var_phi_ss[1:]))) + gamma
        self.server.push("sticks", rho * (target - sticks))
        self._updates += 1
        logger.debug(f"Committed online HDP update {self._updates} (rho={rho:.4g})")
        return diagnostics

    def perplexity(self, batch: DistributedDataset, diagnostics: DistributedDataset) -> Score:
        tokens = batch_tokens(batch)
        if tokens == 0:
            return Score(0.0, 0.0)
        records = as_lookup(diagnostics)
        document = sum(records[doc.doc_id].likelihood for doc in batch.collect())
        return Score(-document / tokens, self.topic_perplexity() / tokens)

    def topic_perplexity(self) -> float:
        """Negative corpus-level bound: stick and topic prior terms."""
        lam = self.server.pull("lambda")
        sticks = self.server.pull("sticks")
        eta, gamma, vocab = self.config.eta, self.config.hdp_gamma, lam.shape[1]

        dig_sum = psi(np.sum(sticks, 0))
        bound = np.sum((np.array([1.0, gamma])[:, np.newaxis] - sticks) * (psi(sticks) - dig_sum))
        bound -= np.sum(gammaln(np.sum(sticks, 0))) - np.sum(gammaln(sticks))

        elog_beta = dirichlet_expectation(lam)
        bound += np.sum((eta - lam) * elog_beta)
        bound += np.sum(gammaln(lam) - gammaln(eta))
        bound += np.sum(gammaln(eta * vocab) - gammaln(np.sum(lam, 1)))
        return float(-bound)

    def describe(self) -> str:
        return (
            f"{type(self).__name__}(T={self.config.truncation}, K={self.config.k}, "
            f"vocab={self.config.vocab_size})"
        )
