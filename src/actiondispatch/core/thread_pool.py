"""
=============================================================================
WORKER THREAD POOL
=============================================================================

Connections are handed to a fixed set of worker threads through a bounded
queue. A worker dispatches one request at a time; a request that goes async
keeps its worker waiting in await_completion until it finishes.

    accept loop ──submit(conn)──► [ queue (bounded) ] ──► Worker-0
                                                      ──► Worker-1
                                                      ──► ...

    submit() on a full queue returns False; the server answers 503.
    shutdown() puts one None (poison pill) per worker on the queue.

=============================================================================
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """A deferred call; `timeout` is how long it may wait in the queue."""

    func: Callable[..., Any]
    args: tuple = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    timeout: Optional[float] = None
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):

    def __init__(self, task_queue: "queue.Queue[Optional[Task]]", worker_id: int, idle_timeout: float = 60.0):
        super().__init__(name=f"Worker-{worker_id}", daemon=True)
        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout
        self.state = WorkerState.IDLE
        self.tasks_completed = 0
        self.tasks_failed = 0
        self._shutdown = threading.Event()

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")
        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue
            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()
        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        self.state = WorkerState.BUSY
        start_time = time.time()
        try:
            waited = start_time - task.submitted_at
            if task.timeout and waited > task.timeout:
                logger.warning(
                    f"Task dropped after waiting {waited:.2f}s in the queue "
                    f"(timeout {task.timeout}s)"
                )
                self.tasks_failed += 1
                return
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
        except Exception as e:
            logger.exception(f"Worker {self.worker_id} task failed after {time.time() - start_time:.3f}s: {e}")
            self.tasks_failed += 1
        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        self._shutdown.set()


class ThreadPool:
    """
    Fixed-size pool of daemon worker threads.

    Args:
        workers: Number of worker threads.
        queue_size: Tasks that may wait before submit() starts refusing.
        idle_timeout: Seconds an idle worker waits before re-checking shutdown.
    """

    def __init__(self, workers: int = 8, queue_size: int = 100, idle_timeout: float = 60.0):
        self.size = workers
        self.queue_size = queue_size
        self.idle_timeout = idle_timeout
        self._task_queue: "queue.Queue[Optional[Task]]" = queue.Queue(maxsize=queue_size)
        self._workers: List[Worker] = []
        self._lock = threading.Lock()
        self._started = False

    def start(self):
        with self._lock:
            if self._started:
                return
            logger.info(f"Starting thread pool with {self.size} workers")
            for worker_id in range(self.size):
                worker = Worker(self._task_queue, worker_id, self.idle_timeout)
                self._workers.append(worker)
                worker.start()
            self._started = True

    def submit(self, func: Callable[..., Any], args: tuple = (), timeout: Optional[float] = None) -> bool:
        """Queue a call; False when the queue is full."""
        try:
            self._task_queue.put_nowait(Task(func=func, args=args, timeout=timeout))
            return True
        except queue.Full:
            return False

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """Stop the workers once queued tasks are done."""
        with self._lock:
            workers = list(self._workers)
            self._workers.clear()
            self._started = False
        for _ in workers:
            self._task_queue.put(None)
        if wait:
            deadline = time.time() + timeout if timeout is not None else None
            for worker in workers:
                remaining = None if deadline is None else max(0.0, deadline - time.time())
                worker.join(remaining)
        for worker in workers:
            worker.shutdown()
        logger.info("Thread pool stopped")

    @property
    def stats(self) -> Dict[str, Any]:
        busy = sum(1 for worker in self._workers if worker.state is WorkerState.BUSY)
        return {
            "workers": {"total": len(self._workers), "busy": busy},
            "queue": {"size": self._task_queue.qsize(), "max": self.queue_size},
        }
