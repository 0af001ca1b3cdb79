"""Central configuration for a windowed topic-model training run.

Every tuneable knob of a run lives in one frozen ``@dataclass`` that is
validated once, at construction, before any document is read.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from pathlib import Path


class ConfigurationError(ValueError):
    """Invalid run configuration. Raised at setup, never retried."""


class OptimizerKind(str, enum.Enum):
    ONLINE = "online"
    GIBBS = "gibbs"

    @classmethod
    def parse(cls, name: str | OptimizerKind) -> OptimizerKind:
        """Resolve an optimizer name (case-insensitive) to its variant."""
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).lower())
        except ValueError:
            supported = ", ".join(kind.value for kind in cls)
            raise ConfigurationError(
                f"Only {supported} are supported but got {name}."
            ) from None


class ModelKind(str, enum.Enum):
    LDA = "lda"
    HDP = "hdp"

    @classmethod
    def parse(cls, name: str | ModelKind) -> ModelKind:
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).lower())
        except ValueError:
            supported = ", ".join(kind.value for kind in cls)
            raise ConfigurationError(
                f"Only {supported} models are supported but got {name}."
            ) from None


@dataclass(frozen=True)
class TrainingConfig:
    """Immutable bag of every tuneable knob of a training run.

    Parameters
    ----------
    k : int
        Number of LDA topics. For HDP, the second-level (per-document)
        truncation.
    truncation : int
        HDP top-level truncation ``T`` (ignored by LDA).
    doc_concentration : float
        Prior on document-topic weights ("alpha"). ``-1`` selects ``1/k``.
    topic_concentration : float
        Prior on topic-term weights ("eta"). ``-1`` selects ``1/k``.
    hdp_gamma : float
        HDP corpus-level stick-breaking concentration.
    max_iterations : int
        Inner iterations run over each window.
    max_inner_iterations : int
        Per-document E-step (or Gibbs sweep) bound inside one update.
    window_size : int
        Documents per window, by ID range.
    corpus_size : int
        Declared number of documents in the corpus.
    partition_count : int
        Partitions each window's batch is spread over.
    ps_count : int
        Parameter-server shards holding the global model.
    checkpoint_interval : int
        Iterations between parameter-server checkpoints (0 disables).
    checkpoint_dir : Path | None
        Where checkpoint files are written. ``None`` keeps them in memory.
    seed : int
        Seed for every random draw of the run.
    vocab_size : int | None
        Vocabulary size. Usually filled in from the corpus.
    optimizer : OptimizerKind
        ``online`` (variational) or ``gibbs`` (collapsed sampling).
    model : ModelKind
        ``lda`` or ``hdp``.
    tau0, kappa : float
        Online learning-rate schedule ``rho_t = (tau0 + t) ** -kappa``.
    strict_corpus_size : bool
        Raise instead of warn when ``corpus_size`` disagrees with the corpus.
    """

    # ── Model ─────────────────────────────────────────────────────
    k: int = 10
    truncation: int = 150
    doc_concentration: float = -1.0
    topic_concentration: float = -1.0
    hdp_gamma: float = 1.0
    model: ModelKind = ModelKind.LDA
    optimizer: OptimizerKind = OptimizerKind.ONLINE

    # ── Schedule ──────────────────────────────────────────────────
    max_iterations: int = 10
    max_inner_iterations: int = 5
    tau0: float = 1024.0
    kappa: float = 0.51
    seed: int = 42

    # ── Windows & distribution ────────────────────────────────────
    window_size: int = 8000
    corpus_size: int = 0
    partition_count: int = 2
    ps_count: int = 2
    checkpoint_interval: int = 10
    checkpoint_dir: Path | None = None
    vocab_size: int | None = None
    strict_corpus_size: bool = False

    def __post_init__(self) -> None:
        # frozen: parsed enums go through object.__setattr__
        object.__setattr__(self, "optimizer", OptimizerKind.parse(self.optimizer))
        object.__setattr__(self, "model", ModelKind.parse(self.model))
        if self.checkpoint_dir is not None:
            object.__setattr__(self, "checkpoint_dir", Path(self.checkpoint_dir))

        if self.k <= 0:
            raise ConfigurationError(
                f"LDA k (number of clusters) must be > 0, but was set to {self.k}"
            )
        if self.model is ModelKind.HDP:
            if self.truncation <= 1:
                raise ConfigurationError(
                    f"HDP truncation level must be > 1, but was set to {self.truncation}"
                )
            if self.optimizer is not OptimizerKind.ONLINE:
                raise ConfigurationError(
                    f"HDP supports only the online optimizer but got {self.optimizer.value}."
                )
        _require_positive("window_size", self.window_size)
        _require_positive("partition_count", self.partition_count)
        _require_positive("ps_count", self.ps_count)
        _require_positive("max_iterations", self.max_iterations)
        _require_positive("max_inner_iterations", self.max_inner_iterations)
        if self.corpus_size < 0:
            raise ConfigurationError(f"corpus_size must be >= 0, got {self.corpus_size}")
        if self.checkpoint_interval < 0:
            raise ConfigurationError(
                f"checkpoint_interval must be >= 0, got {self.checkpoint_interval}"
            )
        if self.vocab_size is not None and self.vocab_size <= 0:
            raise ConfigurationError(f"vocab_size must be > 0, got {self.vocab_size}")
        if not 0.5 < self.kappa <= 1.0:
            raise ConfigurationError(f"kappa must be in (0.5, 1], got {self.kappa}")
        if self.tau0 < 0:
            raise ConfigurationError(f"tau0 must be >= 0, got {self.tau0}")
        for name in ("doc_concentration", "topic_concentration"):
            value = getattr(self, name)
            if value < 0 and value != -1:
                raise ConfigurationError(f"{name} must be >= 0 or -1 (auto), got {value}")
        if self.seed < 0:
            raise ConfigurationError(f"seed must be >= 0, got {self.seed}")
        if self.hdp_gamma <= 0:
            raise ConfigurationError(f"hdp_gamma must be > 0, got {self.hdp_gamma}")

    # ── Helpers ───────────────────────────────────────────────────

    @property
    def alpha(self) -> float:
        """Effective document concentration (``1/k`` when automatic)."""
        if self.doc_concentration == -1:
            return 1.0 / self.k
        return self.doc_concentration

    @property
    def eta(self) -> float:
        """Effective topic concentration (``1/k`` when automatic)."""
        if self.topic_concentration == -1:
            return 1.0 / self.k
        return self.topic_concentration

    @property
    def num_topics(self) -> int:
        """Rows of the global topic-term matrix."""
        return self.truncation if self.model is ModelKind.HDP else self.k

    def with_vocab_size(self, vocab_size: int) -> TrainingConfig:
        return replace(self, vocab_size=vocab_size)


def _require_positive(name: str, value: int) -> None:
    if value <= 0:
        raise ConfigurationError(f"{name} must be > 0, got {value}")
