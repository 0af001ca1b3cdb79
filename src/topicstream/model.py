"""Trained LDA model snapshot returned at the end of a run."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

import numpy as np


@dataclass
class LDAModel:
    """Topic-term parameters copied out of the parameter server.

    Parameters
    ----------
    topic_term : np.ndarray
        ``(k, vocab_size)`` unnormalized topic-term weights (variational
        ``lambda`` or smoothed Gibbs counts).
    alpha : float
        Document concentration the model was trained with.
    eta : float
        Topic concentration the model was trained with.
    """

    topic_term: np.ndarray
    alpha: float
    eta: float

    @property
    def num_topics(self) -> int:
        return self.topic_term.shape[0]

    @property
    def vocab_size(self) -> int:
        return self.topic_term.shape[1]

    def topics(self) -> np.ndarray:
        """Row-normalized topic-term distributions."""
        return self.topic_term / self.topic_term.sum(axis=1, keepdims=True)

    def show_topic(
        self, topic_id: int, topn: int = 10, id2word: Mapping[int, str] | None = None
    ) -> list[tuple[int | str, float]]:
        """Top ``topn`` terms of a topic as ``(term, probability)`` pairs."""
        dist = self.topics()[topic_id]
        best = np.argsort(dist)[::-1][:topn]
        if id2word is None:
            return [(int(t), float(dist[t])) for t in best]
        return [(id2word[int(t)], float(dist[t])) for t in best]
