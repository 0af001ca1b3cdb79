"""Orchestrator: run a full windowed training job.

Connects all modules:
1. Corpus loading and summary
2. Optimizer selection and parameter-server distribution of the global model
3. Windowed training
4. Report export, model snapshot and server recycling
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Sequence

from topicstream.config import ModelKind, TrainingConfig
from topicstream.corpus import check_corpus_size, load_corpus, summarize_corpus
from topicstream.dataset import LocalDataset
from topicstream.metrics import TrainingReport
from topicstream.model import LDAModel
from topicstream.optimizers import create_optimizer
from topicstream.param_server import distribute
from topicstream.training import WindowedTrainer

# Configure basic logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def _export(report: TrainingReport, report_path: Path | None) -> None:
    if report_path is None:
        return
    report_path = Path(report_path)
    if report_path.suffix == ".csv":
        report.export_csv(report_path)
    else:
        report.export_json(report_path)
    logger.info(f"Exported training report to {report_path}")


def _train(config: TrainingConfig, paths: Sequence[str | Path], report_path: Path | None):
    # ── Load & summarize corpus ───────────────────────────────────────
    logger.info(f"Loading corpus from {', '.join(str(p) for p in paths)}")
    start = time.perf_counter()
    documents, vocab_size = load_corpus(paths)
    dataset = LocalDataset.from_records(documents, config.partition_count).cache()
    dataset.count()
    summary = summarize_corpus(documents, vocab_size, time.perf_counter() - start)

    if config.vocab_size is not None and config.vocab_size != vocab_size:
        logger.warning(
            f"Configured vocab_size={config.vocab_size} differs from the corpus "
            f"({vocab_size} terms); using the corpus vocabulary"
        )
    config = config.with_vocab_size(summary.vocab_size)
    check_corpus_size(config.corpus_size, documents, strict=config.strict_corpus_size)

    # ── Distribute global model ───────────────────────────────────────
    optimizer = create_optimizer(config)
    server, monitor_path = distribute(
        optimizer.server_model(),
        config.ps_count,
        checkpoint_interval=config.checkpoint_interval,
        checkpoint_dir=config.checkpoint_dir,
    )
    logger.info(f"dataset size: {config.corpus_size}")
    server.set_train_set_size(config.corpus_size)
    optimizer.initialize(server, monitor_path)

    # ── Train ─────────────────────────────────────────────────────────
    try:
        report = WindowedTrainer(config, optimizer, server).run(dataset)
        _export(report, report_path)
    except Exception:
        server.recycle()
        raise
    finally:
        dataset.unpersist()
    return optimizer, server, report


def run_lda(
    config: TrainingConfig,
    paths: Sequence[str | Path],
    report_path: Path | None = None,
) -> LDAModel:
    """Train LDA and return a snapshot of the trained model."""
    optimizer, server, _ = _train(config, paths, report_path)
    try:
        return optimizer.build_model()
    finally:
        server.recycle()


def run_hdp(
    config: TrainingConfig,
    paths: Sequence[str | Path],
    report_path: Path | None = None,
) -> None:
    """Train HDP. The model lives only on the server, which is recycled."""
    optimizer, server, _ = _train(config, paths, report_path)
    server.recycle()
    logger.info(f"Finished training HDP model using {optimizer.describe()}")


def run(
    config: TrainingConfig,
    paths: Sequence[str | Path],
    report_path: Path | None = None,
) -> LDAModel | None:
    """Dispatch on ``config.model``."""
    if config.model is ModelKind.HDP:
        return run_hdp(config, paths, report_path)
    return run_lda(config, paths, report_path)
