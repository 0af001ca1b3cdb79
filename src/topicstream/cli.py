"""Command line for windowed LDA / HDP training.

Run with:
    python -m topicstream --corpusSize 16001 --windowSize 8000 corpus.mm
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from topicstream.config import ConfigurationError, TrainingConfig

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


class _ArgumentParser(argparse.ArgumentParser):
    """Usage and message on stderr, exit code 1."""

    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    defaults = TrainingConfig()
    parser = _ArgumentParser(
        prog="topicstream",
        description="Windowed topic-model training over a parameter server.",
    )
    parser.add_argument("--model", default=defaults.model.value,
                        help=f"lda or hdp. default: {defaults.model.value}")
    parser.add_argument("--psCount", "--ps-count", dest="ps_count", type=int, default=defaults.ps_count,
                        help=f"parameter-server shards. default: {defaults.ps_count}")
    parser.add_argument("--corpusSize", "--corpus-size", dest="corpus_size", type=int,
                        default=defaults.corpus_size,
                        help=f"declared number of documents. default: {defaults.corpus_size}")
    parser.add_argument("--windowSize", "--window-size", dest="window_size", type=int,
                        default=defaults.window_size,
                        help=f"documents per window. default: {defaults.window_size}")
    parser.add_argument("--K", "--k", dest="k", type=int, default=None,
                        help="number of topics (HDP: second-level truncation). "
                             "default: 10 for lda, 15 for hdp")
    parser.add_argument("--T", "--t", dest="truncation", type=int, default=defaults.truncation,
                        help=f"HDP top-level truncation. default: {defaults.truncation}")
    parser.add_argument("--maxIterations", "--max-iterations", dest="max_iterations", type=int,
                        default=defaults.max_iterations,
                        help=f"iterations per window. default: {defaults.max_iterations}")
    parser.add_argument("--maxInnerIterations", "--max-inner-iterations", dest="max_inner_iterations",
                        type=int, default=defaults.max_inner_iterations,
                        help=f"per-document inference sweeps. default: {defaults.max_inner_iterations}")
    parser.add_argument("--docConcentration", "--doc-concentration", dest="doc_concentration",
                        type=float, default=defaults.doc_concentration,
                        help="topic smoothing (alpha), -1 = auto")
    parser.add_argument("--topicConcentration", "--topic-concentration", dest="topic_concentration",
                        type=float, default=defaults.topic_concentration,
                        help="term smoothing (eta), -1 = auto")
    parser.add_argument("--vocabSize", "--vocab-size", dest="vocab_size", type=int, default=None,
                        help="expected vocabulary size; the corpus value wins")
    parser.add_argument("--optimizer", default=defaults.optimizer.value,
                        help="available optimizers are online and gibbs. "
                             f"default: {defaults.optimizer.value}")
    parser.add_argument("--partitions", dest="partition_count", type=int,
                        default=defaults.partition_count,
                        help=f"batch partitions. default: {defaults.partition_count}")
    parser.add_argument("--checkpointInterval", "--checkpoint-interval", dest="checkpoint_interval",
                        type=int, default=defaults.checkpoint_interval,
                        help=f"iterations between checkpoints. default: {defaults.checkpoint_interval}")
    parser.add_argument("--checkpointDir", "--checkpoint-dir", dest="checkpoint_dir", type=Path,
                        default=None, help="directory for checkpoint files")
    parser.add_argument("--seed", type=int, default=defaults.seed,
                        help=f"random seed. default: {defaults.seed}")
    parser.add_argument("--report", type=Path, default=None,
                        help="write the training report (.json or .csv)")
    parser.add_argument("--logLevel", "--log-level", dest="log_level", default="info",
                        type=str.lower, choices=LOG_LEVELS, help="log level. default: info")
    parser.add_argument("input", nargs="+", help="Matrix Market corpus files")
    return parser


def config_from_args(args: argparse.Namespace) -> TrainingConfig:
    k = args.k
    if k is None:
        k = 15 if str(args.model).lower() == "hdp" else 10
    return TrainingConfig(
        k=k,
        truncation=args.truncation,
        doc_concentration=args.doc_concentration,
        topic_concentration=args.topic_concentration,
        model=args.model,
        optimizer=args.optimizer,
        max_iterations=args.max_iterations,
        max_inner_iterations=args.max_inner_iterations,
        seed=args.seed,
        window_size=args.window_size,
        corpus_size=args.corpus_size,
        partition_count=args.partition_count,
        ps_count=args.ps_count,
        checkpoint_interval=args.checkpoint_interval,
        checkpoint_dir=args.checkpoint_dir,
        vocab_size=args.vocab_size,
    )


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = config_from_args(args)
    except ConfigurationError as exc:
        parser.error(str(exc))

    level = getattr(logging, args.log_level.upper())
    logging.getLogger().setLevel(level)

    from topicstream.runner import run

    logging.getLogger(__name__).info(f"Setting log level to {args.log_level.upper()}")
    run(config, args.input, report_path=args.report)
    return 0
