"""Parameter server holding the shared, versioned global topic model.

The global model is a set of named dense matrices (topic-term parameters,
stick weights). ``distribute`` splits each matrix column-wise over
``server_count`` shards. Every shard has its own lock. Whole-matrix reads and
writes take all shard locks in shard order, so a pull never observes a push
half applied and concurrent pushes are summed one at a time.
"""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator

import numpy as np

logger = logging.getLogger(__name__)

PartitionFn = Callable[[int, int, int], int]


class ParameterServerError(RuntimeError):
    """Operation on a recycled or mis-addressed parameter server."""


def default_partition(column: int, num_columns: int, server_count: int) -> int:
    """Assign contiguous, near-equal column ranges to servers."""
    return min(column * server_count // max(num_columns, 1), server_count - 1)


@dataclass
class ServerModel:
    """Declaration of the matrices a parameter server must hold."""

    name: str
    matrices: dict[str, np.ndarray] = field(default_factory=dict)

    def shape(self, key: str) -> tuple[int, ...]:
        return self.matrices[key].shape


def lda_server_model(vocab_size: int, k: int, seed: int = 0) -> ServerModel:
    """LDA topic-term ``lambda`` initialised around 1, as in online VB."""
    rng = np.random.default_rng(seed)
    lam = rng.gamma(100.0, 1.0 / 100.0, (k, vocab_size))
    return ServerModel(name="lda", matrices={"lambda": lam})


def gibbs_server_model(vocab_size: int, k: int) -> ServerModel:
    """Topic-term counts for collapsed Gibbs sampling, starting empty."""
    return ServerModel(name="lda-gibbs", matrices={"counts": np.zeros((k, vocab_size))})


def hdp_server_model(
    vocab_size: int, truncation: int, corpus_size: int, seed: int = 0
) -> ServerModel:
    """HDP topic ``lambda`` and corpus-level sticks.

    Topics start from a gamma draw scaled by the corpus size ``D``, as
    ``gensim.models.HdpModel`` initialises ``m_lambda``.
    """
    if corpus_size <= 0:
        raise ValueError(f"corpus_size must be > 0, got {corpus_size}")
    rng = np.random.default_rng(seed)
    scale = corpus_size * 100.0 / (truncation * vocab_size)
    lam = rng.gamma(1.0, 1.0, (truncation, vocab_size)) * scale
    sticks = np.zeros((2, truncation - 1))
    sticks[0] = 1.0
    sticks[1] = np.arange(truncation - 1, 0, -1, dtype=np.float64)
    return ServerModel(name="hdp", matrices={"lambda": lam, "sticks": sticks})


class _Shard:
    """Columns of every matrix owned by one server."""

    def __init__(self, index: int, columns: dict[str, np.ndarray], values: dict[str, np.ndarray]):
        self.index = index
        self.columns = columns
        self.values = values
        self.lock = threading.Lock()


class ParameterServer:
    """Handle on a running, sharded parameter server.

    Parameters
    ----------
    model : ServerModel
        Matrices to hold; copied, never aliased.
    server_count : int
        Number of shards.
    partition_fn : PartitionFn
        ``(column, num_columns, server_count) -> server index``.
    monitor_path : str
        Opaque identifier of this server, used in logs and checkpoint names.
    checkpoint_interval : int
        Checkpoint every this many ``iteration_done`` calls (0 = never).
    checkpoint_dir : Path | None
        Directory for ``.npz`` checkpoints. ``None`` keeps them in memory.
    """

    def __init__(
        self,
        model: ServerModel,
        server_count: int,
        partition_fn: PartitionFn = default_partition,
        monitor_path: str | None = None,
        checkpoint_interval: int = 0,
        checkpoint_dir: Path | None = None,
    ) -> None:
        if server_count <= 0:
            raise ParameterServerError(f"server_count must be > 0, got {server_count}")
        self.name = model.name
        self.monitor_path = monitor_path or f"ps://{model.name}-{uuid.uuid4().hex[:8]}"
        self.server_count = server_count
        self.checkpoint_interval = checkpoint_interval
        self.checkpoint_dir = Path(checkpoint_dir) if checkpoint_dir is not None else None
        self._shapes = {key: value.shape for key, value in model.matrices.items()}
        self._counter_lock = threading.Lock()
        self._iteration = 0
        self._train_set_size = 0
        self._recycled = False
        self.last_checkpoint: dict[str, np.ndarray] | None = None
        self.checkpoint_paths: list[Path] = []
        self._shards = self._split(model, partition_fn)

    def _split(self, model: ServerModel, partition_fn: PartitionFn) -> list[_Shard]:
        shards = []
        for index in range(self.server_count):
            columns: dict[str, np.ndarray] = {}
            values: dict[str, np.ndarray] = {}
            for key, matrix in model.matrices.items():
                n = matrix.shape[1]
                owned = np.array(
                    [c for c in range(n) if partition_fn(c, n, self.server_count) == index],
                    dtype=np.int64,
                )
                columns[key] = owned
                values[key] = np.array(matrix[:, owned], dtype=np.float64, copy=True)
            shards.append(_Shard(index, columns, values))
        return shards

    def _check_alive(self) -> None:
        if self._recycled:
            raise ParameterServerError(f"parameter server {self.monitor_path} was recycled")

    def _check_key(self, key: str) -> None:
        if key not in self._shapes:
            raise ParameterServerError(f"unknown matrix {key!r} on {self.monitor_path}")

    @contextmanager
    def _locked(self) -> Iterator[list[_Shard]]:
        """Hold every shard lock, acquired in shard order."""
        with ExitStack() as stack:
            for shard in self._shards:
                stack.enter_context(shard.lock)
            yield self._shards

    # ── Model access ──────────────────────────────────────────────

    @property
    def keys(self) -> tuple[str, ...]:
        return tuple(self._shapes)

    def pull(self, key: str) -> np.ndarray:
        """Return a consistent copy of the full matrix ``key``."""
        self._check_alive()
        self._check_key(key)
        out = np.empty(self._shapes[key])
        with self._locked() as shards:
            for shard in shards:
                out[:, shard.columns[key]] = shard.values[key]
        return out

    def push(self, key: str, delta: np.ndarray) -> None:
        """Add ``delta`` to matrix ``key`` atomically across shards."""
        self._check_alive()
        self._check_key(key)
        if delta.shape != self._shapes[key]:
            raise ParameterServerError(
                f"delta for {key!r} has shape {delta.shape}, expected {self._shapes[key]}"
            )
        with self._locked() as shards:
            for shard in shards:
                shard.values[key] += delta[:, shard.columns[key]]

    def assign(self, key: str, value: np.ndarray) -> None:
        """Overwrite matrix ``key``."""
        self._check_alive()
        self._check_key(key)
        if value.shape != self._shapes[key]:
            raise ParameterServerError(
                f"value for {key!r} has shape {value.shape}, expected {self._shapes[key]}"
            )
        with self._locked() as shards:
            for shard in shards:
                shard.values[key] = np.array(value[:, shard.columns[key]], dtype=np.float64)

    def snapshot(self) -> dict[str, np.ndarray]:
        return {key: self.pull(key) for key in self._shapes}

    # ── Bookkeeping ───────────────────────────────────────────────

    @property
    def iteration(self) -> int:
        return self._iteration

    @property
    def train_set_size(self) -> int:
        return self._train_set_size

    def set_train_set_size(self, size: int) -> None:
        self._check_alive()
        self._train_set_size = size

    def iteration_done(self) -> int:
        """Advance the global iteration counter and checkpoint on schedule."""
        self._check_alive()
        with self._counter_lock:
            self._iteration += 1
            iteration = self._iteration
        if self.checkpoint_interval and iteration % self.checkpoint_interval == 0:
            self.checkpoint()
        return iteration

    def checkpoint(self) -> Path | None:
        """Snapshot every matrix with the current iteration counter."""
        self.last_checkpoint = self.snapshot()
        logger.info(f"Checkpoint of {self.monitor_path} at iteration {self._iteration}")
        if self.checkpoint_dir is None:
            return None
        self.checkpoint_dir.mkdir(parents=True, exist_ok=True)
        path = self.checkpoint_dir / f"{self.name}-iter-{self._iteration}.npz"
        np.savez(path, __iteration__=np.array(self._iteration), **self.last_checkpoint)
        self.checkpoint_paths.append(path)
        return path

    def restore(self, path: str | Path) -> None:
        """Resume matrices and the iteration counter from a checkpoint file."""
        self._check_alive()
        with np.load(path) as data:
            for key in self._shapes:
                if key not in data:
                    raise ParameterServerError(f"checkpoint {path} lacks matrix {key!r}")
                self.assign(key, data[key])
            self._iteration = int(data["__iteration__"])
        logger.info(f"Restored {self.monitor_path} from {path} at iteration {self._iteration}")

    def recycle(self) -> None:
        """Release every shard. The handle is unusable afterwards."""
        if self._recycled:
            return
        for shard in self._shards:
            with shard.lock:
                shard.values.clear()
        self._shards = []
        self._recycled = True
        logger.info(f"Recycled parameter server {self.monitor_path}")

    @property
    def recycled(self) -> bool:
        return self._recycled

    def __enter__(self) -> ParameterServer:
        return self

    def __exit__(self, *exc_info) -> None:
        self.recycle()


def distribute(
    model: ServerModel,
    server_count: int,
    partition_fn: PartitionFn = default_partition,
    checkpoint_interval: int = 0,
    checkpoint_dir: Path | None = None,
) -> tuple[ParameterServer, str]:
    """Start a parameter server for ``model``; return it and its monitor path."""
    server = ParameterServer(
        model,
        server_count,
        partition_fn=partition_fn,
        checkpoint_interval=checkpoint_interval,
        checkpoint_dir=checkpoint_dir,
    )
    logger.info(
        f"Distributed model {model.name!r} over {server_count} servers at {server.monitor_path}"
    )
    return server, server.monitor_path
