"""Parallel file transfers for ftpq.

Spreads a batch of STOR/RETR tasks over the primary session and
clones of it, then reports one aggregated outcome.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Union

from ftpq.ftp.exceptions import FTPError, FTPTaskError, FTPTransferError

logger = logging.getLogger("ftpq.transfer")

# Block size for RETR copies (8KB)
BLOCK_SIZE = 8192


class TransferDirection(Enum):
    """Which way the bytes go."""
    STORE = "store"
    RETRIEVE = "retrieve"


@dataclass(frozen=True)
class TransferTask:
    """One file to upload or download."""
    direction: TransferDirection
    local_path: Union[str, Path]
    remote_path: str

    @classmethod
    def store(cls, local_path: Union[str, Path], remote_path: str) -> "TransferTask":
        """Upload local_path to remote_path."""
        return cls(TransferDirection.STORE, local_path, remote_path)

    @classmethod
    def retrieve(cls, remote_path: str, local_path: Union[str, Path]) -> "TransferTask":
        """Download remote_path to local_path."""
        return cls(TransferDirection.RETRIEVE, local_path, remote_path)


@dataclass(frozen=True)
class StopTask:
    """Queue item telling the worker that takes it to stop."""


QueueItem = Union[TransferTask, StopTask]


class OutcomeKind(Enum):
    """Result category of one queue consumer event."""
    OK = "ok"
    TASK_FAILED = "task_failed"
    WORKER_ABORTED = "worker_aborted"


@dataclass(frozen=True)
class TransferOutcome:
    """Result of one task, or of a worker that could not start."""
    kind: OutcomeKind
    task: Optional[TransferTask] = None
    error: Optional[Exception] = None
    worker: str = ""
    bytes_transferred: int = 0
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.kind == OutcomeKind.OK


def effective_parallelism(task_count: int, nr_parallel: int) -> int:
    """Number of connections used: negative or too large means one per task."""
    if nr_parallel < 0 or nr_parallel > task_count:
        return task_count
    return nr_parallel


def execute_task(session, task: TransferTask, worker: str = "") -> TransferOutcome:
    """
    Run one task on a session and describe how it went.

    Never raises: failures become TASK_FAILED outcomes.
    """
    start_time = time.time()
    transferred = 0

    try:
        if task.direction == TransferDirection.STORE:
            with open(task.local_path, "rb") as source:
                transferred = session.store(task.remote_path, source)
        elif task.direction == TransferDirection.RETRIEVE:
            with session.retrieve(task.remote_path) as response, open(task.local_path, "wb") as target:
                while True:
                    block = response.read(BLOCK_SIZE)
                    if not block:
                        break
                    target.write(block)
                    transferred += len(block)
        else:
            raise ValueError(f"Unknown direction for transfer: {task.direction}")
    except Exception as e:
        error = FTPTaskError(task.direction.value, str(task.local_path), task.remote_path, e)
        logger.warning(f"[{worker}] {error}")
        return TransferOutcome(
            OutcomeKind.TASK_FAILED,
            task=task,
            error=error,
            worker=worker,
            bytes_transferred=transferred,
            duration_seconds=time.time() - start_time,
        )

    logger.debug(f"[{worker}] {task.direction.value} {task.remote_path}: {transferred} bytes")
    return TransferOutcome(
        OutcomeKind.OK,
        task=task,
        worker=worker,
        bytes_transferred=transferred,
        duration_seconds=time.time() - start_time,
    )


def _work_loop(session, tasks: "queue.Queue[QueueItem]", results: queue.Queue, worker: str) -> None:
    """Consume tasks until a StopTask is dequeued."""
    while True:
        item = tasks.get()
        if isinstance(item, StopTask):
            return
        results.put(execute_task(session, item, worker))


def _sub_worker(
    primary,
    directory: str,
    tasks: "queue.Queue[QueueItem]",
    results: queue.Queue,
    worker: str
) -> None:
    """Thread body: clone the primary, work, then quit the clone."""
    sub = None
    try:
        sub = primary.clone()
        sub.change_dir(directory)
    except Exception as e:
        logger.warning(f"[{worker}] could not start: {e}")
        if sub is not None:
            sub.close()
        results.put(TransferOutcome(OutcomeKind.WORKER_ABORTED, error=e, worker=worker))
        return

    try:
        _work_loop(sub, tasks, results, worker)
    finally:
        try:
            sub.quit()
        except FTPError as e:
            logger.warning(f"[{worker}] quit failed: {e}")


def multiple_transfer(session, tasks: Sequence[TransferTask], nr_parallel: int = -1) -> List[TransferOutcome]:
    """
    Transfer many files over up to nr_parallel connections.

    The primary session works as one of the connections and stays open
    afterwards; the others are clones that start in the primary's
    current directory and are quit when the queue runs dry. A clone that
    cannot start takes no tasks, so the remaining workers pick them up.

    Args:
        session: Logged-in ControlSession
        tasks: Tasks to run, in queue order
        nr_parallel: Maximum number of connections, negative for one per task

    Returns:
        One outcome per task, in completion order

    Raises:
        FTPTransferError: If any task failed, after every task has run
    """
    tasks = list(tasks)
    if not tasks:
        return []

    nr_parallel = effective_parallelism(len(tasks), nr_parallel)
    directory = session.current_dir()

    task_queue: "queue.Queue[QueueItem]" = queue.Queue(maxsize=len(tasks) + nr_parallel)
    for task in tasks:
        task_queue.put_nowait(task)
    for _ in range(nr_parallel):
        task_queue.put_nowait(StopTask())

    results: "queue.Queue[TransferOutcome]" = queue.Queue()
    logger.info(f"Transferring {len(tasks)} files over {nr_parallel} connections")

    threads = []
    for index in range(1, nr_parallel):
        thread = threading.Thread(
            target=_sub_worker,
            args=(session, directory, task_queue, results, f"worker-{index}"),
            name=f"ftpq-worker-{index}",
            daemon=True,
        )
        thread.start()
        threads.append(thread)

    _work_loop(session, task_queue, results, "primary")

    outcomes: List[TransferOutcome] = []
    aborted = 0
    while len(outcomes) < len(tasks):
        outcome = results.get()
        if outcome.kind == OutcomeKind.WORKER_ABORTED:
            aborted += 1
            continue
        outcomes.append(outcome)

    for thread in threads:
        thread.join()

    if aborted:
        logger.warning(f"{aborted} of {nr_parallel - 1} extra connections could not be used")

    failures = [outcome.error for outcome in outcomes if not outcome.success]
    if failures:
        raise FTPTransferError(failures, outcomes)

    logger.info(f"Transferred {len(outcomes)} files")
    return outcomes


def get_transfer_summary(outcomes: List[TransferOutcome]) -> dict:
    """
    Get summary statistics for a batch transfer.

    Args:
        outcomes: Outcomes returned by multiple_transfer (or carried by
            FTPTransferError.outcomes)

    Returns:
        Dictionary with summary statistics
    """
    successful = [o for o in outcomes if o.success]
    failed = [o for o in outcomes if not o.success]

    return {
        "total": len(outcomes),
        "successful": len(successful),
        "failed": len(failed),
        "bytes_transferred": sum(o.bytes_transferred for o in outcomes),
        "duration_seconds": sum(o.duration_seconds for o in outcomes),
        "failures": [(o.task.remote_path if o.task else o.worker, str(o.error)) for o in failed],
    }
