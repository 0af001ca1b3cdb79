"""Windowed training loop: the online driver over a parameter server.

The corpus is consumed in windows of ``window_size`` consecutive document
IDs. Each window's batch is filtered out of the corpus, hash-partitioned,
pinned in memory and iterated ``max_iterations`` times. Every iteration
commits one optimizer update, scores the batch, and advances the parameter
server's iteration counter. Windows are never revisited.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator, NamedTuple

from topicstream.corpus import report_mismatch
from topicstream.metrics import IterationMetrics, TrainingReport, WindowSummary

if TYPE_CHECKING:
    from topicstream.config import TrainingConfig
    from topicstream.dataset import DistributedDataset
    from topicstream.optimizers.base import OptimizerState
    from topicstream.param_server import ParameterServer

logger = logging.getLogger(__name__)


class Window(NamedTuple):
    """Half-open document-ID range ``[begin, end)``."""

    index: int
    begin: int
    end: int

    def contains(self, doc_id: int) -> bool:
        return self.begin <= doc_id < self.end


def count_windows(corpus_size: int, window_size: int) -> int:
    """Number of windows ``w`` satisfying ``(w + 1) * window_size < corpus_size``.

    The inequality is strict: a corpus of exactly ``n * window_size``
    documents trains ``n - 1`` windows and its last full window is skipped.
    """
    if window_size <= 0:
        raise ValueError(f"window_size must be > 0, got {window_size}")
    if corpus_size <= window_size:
        return 0
    return (corpus_size - 1) // window_size


def iter_windows(corpus_size: int, window_size: int) -> Iterator[Window]:
    window_count = 0
    while (window_count + 1) * window_size < corpus_size:
        yield Window(
            window_count,
            window_count * window_size,
            (window_count + 1) * window_size,
        )
        window_count += 1


@contextmanager
def pinned(dataset: DistributedDataset) -> Iterator[tuple[DistributedDataset, int]]:
    """Cache and materialize ``dataset``; always unpersist it on exit."""
    dataset.cache()
    try:
        yield dataset, dataset.count()
    finally:
        dataset.unpersist()


class WindowedTrainer:
    """Drive an optimizer over consecutive windows of a corpus.

    Parameters
    ----------
    config : TrainingConfig
        Window size, declared corpus size, partitions and iterations.
    optimizer : OptimizerState
        Initialised optimizer. It is the only writer of the global model.
    server : ParameterServer
        Handle whose iteration counter advances once per inner iteration.
    """

    def __init__(self, config: TrainingConfig, optimizer: OptimizerState, server: ParameterServer):
        self.config = config
        self.optimizer = optimizer
        self.server = server

    def _warn_about_coverage(self) -> None:
        corpus_size, window_size = self.config.corpus_size, self.config.window_size
        windows = count_windows(corpus_size, window_size)
        if windows == 0:
            logger.warning(
                f"window_size={window_size} >= corpus_size={corpus_size}: "
                "no window will be trained and the model stays untrained"
            )
            return
        trailing = corpus_size - windows * window_size
        if trailing > 0:
            logger.warning(
                f"{trailing} documents after id {windows * window_size} fall outside "
                "the last trained window and are skipped"
            )

    def run(self, documents: DistributedDataset) -> TrainingReport:
        """Train every window of ``documents`` in increasing ID order."""
        report = TrainingReport(
            monitor_path=self.optimizer.monitor_path or self.server.monitor_path,
            optimizer=self.optimizer.describe(),
        )
        self._warn_about_coverage()

        for window in iter_windows(self.config.corpus_size, self.config.window_size):
            batch = documents.filter(
                lambda doc, w=window: w.contains(doc.doc_id)
            ).partition_by(self.config.partition_count)
            with pinned(batch) as (batch, num_documents):
                if num_documents == 0:
                    report_mismatch(
                        f"window {window.index} [{window.begin}, {window.end}) holds no "
                        f"documents; corpus_size={self.config.corpus_size} may be misreported",
                        self.config.strict_corpus_size,
                    )
                summary = self._train_window(window, batch, num_documents)
            report.windows.append(summary)
            self._log_summary(summary)

        logger.info(
            f"Finished training {len(report.windows)} windows "
            f"({report.total_iterations} iterations) using {self.optimizer.describe()}"
        )
        return report

    def _train_window(
        self, window: Window, batch: DistributedDataset, num_documents: int
    ) -> WindowSummary:
        summary = WindowSummary(window.index, window.begin, window.end, num_documents)
        max_iterations = self.config.max_iterations
        for iteration in range(max_iterations):
            logger.info(f"[window+iter+maxiter: {window.index} {iteration} {max_iterations}]")
            start = time.perf_counter()
            with pinned(self.optimizer.next(batch)) as (diagnostics, _):
                elapsed = time.perf_counter() - start
                score = self.optimizer.perplexity(batch, diagnostics)
            summary.iterations.append(IterationMetrics(iteration, elapsed, score))
            self.server.iteration_done()
        return summary

    def _log_summary(self, summary: WindowSummary) -> None:
        times = " ".join(f"{t:.3f}" for t in summary.iteration_times)
        scores = " ".join(str(s) for s in summary.scores)
        logger.info(f"[window+itertime: {summary.index} {times}]")
        logger.info(f"[window+iterper: {summary.index} {scores}]")
