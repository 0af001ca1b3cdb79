"""Optimizer state contract shared by every inference algorithm.

An optimizer owns one algorithm's update rule and scoring pass. It never
holds the global model itself: it reads snapshots from, and commits
aggregated updates to, the parameter server it was initialised against.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, NamedTuple

import numpy as np

from topicstream.config import ConfigurationError, TrainingConfig

if TYPE_CHECKING:
    from topicstream.dataset import DistributedDataset
    from topicstream.param_server import ParameterServer, ServerModel

logger = logging.getLogger(__name__)


class Score(NamedTuple):
    """Per-token negative bound of a batch: document part and topic part."""

    document: float
    topic: float

    def __str__(self) -> str:
        return f"({self.document:.6g}, {self.topic:.6g})"


class Accumulator:
    """Thread-safe sum of worker-local arrays, read once by the driver."""

    def __init__(self, shape: tuple[int, ...]):
        self._value = np.zeros(shape)
        self._lock = threading.Lock()

    def add(self, delta: np.ndarray) -> None:
        with self._lock:
            self._value += delta

    @property
    def value(self) -> np.ndarray:
        with self._lock:
            return self._value.copy()


class OptimizerState(ABC):
    """One inference algorithm bound to a parameter server.

    Lifecycle: ``server_model()`` declares the matrices to distribute,
    ``initialize(server, monitor_path)`` binds the running server, then the
    training loop alternates ``next(batch)`` and
    ``perplexity(batch, diagnostics)``. ``next`` commits exactly one update
    per call; ``perplexity`` never writes.
    """

    name: str = "optimizer"

    def __init__(self, config: TrainingConfig):
        self.config = config
        self._server: ParameterServer | None = None
        self.monitor_path: str | None = None
        self._updates = 0

    # ── Setup ─────────────────────────────────────────────────────

    @abstractmethod
    def server_model(self) -> ServerModel:
        """Initial matrices the parameter server must hold."""

    def initialize(self, server: ParameterServer, monitor_path: str | None = None) -> OptimizerState:
        """Bind to a fresh or resumed global model.

        The learning-rate step resumes from the server's iteration counter.
        """
        if self.config.k <= 0:
            raise ConfigurationError(
                f"LDA k (number of clusters) must be > 0, but was set to {self.config.k}"
            )
        if self.config.vocab_size is None or self.config.vocab_size <= 0:
            raise ConfigurationError(
                f"vocabulary size must be set and > 0, got {self.config.vocab_size}"
            )
        self._server = server
        self.monitor_path = monitor_path or server.monitor_path
        self._updates = server.iteration
        logger.info(f"Initialized {self.describe()} against {self.monitor_path}")
        return self

    @property
    def server(self) -> ParameterServer:
        if self._server is None:
            raise RuntimeError(f"{self.name} optimizer used before initialize()")
        return self._server

    # ── Per-iteration operations ──────────────────────────────────

    @abstractmethod
    def next(self, batch: DistributedDataset) -> DistributedDataset:
        """Run one inference pass over ``batch`` and commit it.

        Returns per-document diagnostics, already materialized.
        """

    @abstractmethod
    def perplexity(self, batch: DistributedDataset, diagnostics: DistributedDataset) -> Score:
        """Score ``batch`` against the current model without mutating it."""

    # ── Helpers ───────────────────────────────────────────────────

    @property
    def updates(self) -> int:
        """Number of updates committed through this optimizer (incl. resumed)."""
        return self._updates

    def rho(self) -> float:
        """Online step size ``(tau0 + t) ** -kappa``."""
        return float((self.config.tau0 + self._updates) ** -self.config.kappa)

    def corpus_scale(self, batch_size: int) -> float:
        """Ratio of corpus to batch size used to scale batch statistics."""
        total = self.server.train_set_size or self.config.corpus_size or batch_size
        return total / max(batch_size, 1)

    def _materialize(self, diagnostics: DistributedDataset) -> tuple[DistributedDataset, int]:
        diagnostics.cache()
        return diagnostics, diagnostics.count()

    def _rng(self, partition: int) -> np.random.Generator:
        return np.random.default_rng([self.config.seed, self._updates, partition])

    def describe(self) -> str:
        return f"{type(self).__name__}(k={self.config.k}, vocab={self.config.vocab_size})"

    def __repr__(self) -> str:
        return self.describe()


def batch_tokens(batch: DistributedDataset) -> float:
    return float(sum(doc.num_tokens for doc in batch.collect()))


def as_lookup(diagnostics: DistributedDataset) -> dict[int, Any]:
    """Map ``doc_id`` to the rest of each diagnostic record."""
    return {record[0]: record for record in diagnostics.collect()}
