"""Inference algorithms behind the uniform optimizer-state contract."""

from __future__ import annotations

from topicstream.config import ModelKind, OptimizerKind, TrainingConfig
from topicstream.optimizers.base import OptimizerState, Score
from topicstream.optimizers.gibbs_lda import GibbsLDAOptimizer
from topicstream.optimizers.online_hdp import OnlineHDPOptimizer
from topicstream.optimizers.online_lda import OnlineLDAOptimizer

_REGISTRY: dict[tuple[ModelKind, OptimizerKind], type[OptimizerState]] = {
    (ModelKind.LDA, OptimizerKind.ONLINE): OnlineLDAOptimizer,
    (ModelKind.LDA, OptimizerKind.GIBBS): GibbsLDAOptimizer,
    (ModelKind.HDP, OptimizerKind.ONLINE): OnlineHDPOptimizer,
}


def create_optimizer(config: TrainingConfig) -> OptimizerState:
    """Resolve the configured model/optimizer variant to an optimizer."""
    return _REGISTRY[(config.model, config.optimizer)](config)


__all__ = [
    "GibbsLDAOptimizer",
    "OnlineHDPOptimizer",
    "OnlineLDAOptimizer",
    "OptimizerState",
    "Score",
    "create_optimizer",
]
