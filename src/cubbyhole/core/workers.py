"""
=============================================================================
CONNECTION WORKERS (THREAD PER CONNECTION)
=============================================================================

A cubbyhole session lives as long as the client wants: a user may sit at
the prompt for hours. A fixed-size pool would run out of workers to idle
sessions, so every accepted connection gets its own thread.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   accept loop ──spawn──► ConnectionWorker 1 ──► handler(conn 1)     │
    │        │                                                             │
    │        ├─────spawn──► ConnectionWorker 2 ──► handler(conn 2)        │
    │        │                                                             │
    │        └─────spawn──► ConnectionWorker 3 ──► handler(conn 3)        │
    │                                                                      │
    │   The accept loop never waits on a worker (fire and forget).        │
    │   WorkerGroup only remembers them so shutdown can close them.       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Workers are daemon threads: a stuck client can never keep the process
alive after the main thread is done.

=============================================================================
"""

import threading
import time
import logging
from enum import Enum
from typing import Callable, Optional

from ..exceptions import DispatchError
from .connection import Connection


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"


class ConnectionWorker(threading.Thread):
    """
    Thread that runs one connection handler to completion.

    Whatever happens inside the handler, the connection is closed and the
    worker removes itself from its group when it exits.
    """

    def __init__(
        self,
        conn: Connection,
        target: Callable[[Connection], None],
        on_exit: Optional[Callable[["ConnectionWorker"], None]] = None,
    ):
        super().__init__(name=f"Connection-{conn.id}", daemon=True)
        self.conn = conn
        self.target = target
        self.on_exit = on_exit
        self.state = WorkerState.STARTING
        self.started_at: Optional[float] = None
        self.failed = False

    def run(self):
        self.state = WorkerState.RUNNING
        self.started_at = time.time()
        logger.debug(f"[{self.conn.id}] Worker started for {self.conn.peer}")

        try:
            self.target(self.conn)
        except Exception as e:
            # One broken session must not take the server down
            self.failed = True
            logger.exception(f"[{self.conn.id}] Connection handler failed: {e}")
        finally:
            self.conn.close()
            self.state = WorkerState.STOPPED
            elapsed = time.time() - self.started_at
            logger.debug(f"[{self.conn.id}] Worker stopped after {elapsed:.3f}s")
            if self.on_exit is not None:
                self.on_exit(self)


class WorkerGroup:
    """
    Registry of live connection workers.

    Usage:
        group = WorkerGroup(max_connections=100)
        group.spawn(conn, handle)      # returns False if over the limit
        ...
        group.shutdown(timeout=5.0)    # abort + join everything still open
    """

    def __init__(self, max_connections: Optional[int] = None):
        self.max_connections = max_connections
        self._workers: set = set()
        self._lock = threading.Lock()

        self.total_spawned = 0
        self.total_rejected = 0
        self.total_failed = 0

    def spawn(self, conn: Connection, target: Callable[[Connection], None]) -> bool:
        """
        Start a worker thread for a connection.

        Returns:
            True if a worker was started. False if max_connections was
            reached; the connection has been closed in that case.

        Raises:
            DispatchError: If the thread could not be started. The
                           connection has been closed.
        """
        worker = ConnectionWorker(conn, target, on_exit=self._on_exit)

        with self._lock:
            if self.max_connections is not None and len(self._workers) >= self.max_connections:
                self.total_rejected += 1
                rejected = True
            else:
                self._workers.add(worker)
                rejected = False

        if rejected:
            logger.warning(
                f"[{conn.id}] Connection limit ({self.max_connections}) reached, "
                f"rejecting {conn.peer}"
            )
            conn.close()
            return False

        try:
            worker.start()
        except RuntimeError as e:
            # "can't start new thread": out of execution contexts
            with self._lock:
                self._workers.discard(worker)
            conn.close()
            raise DispatchError(f"Could not start a thread for {conn.peer}: {e}") from e

        with self._lock:
            self.total_spawned += 1
        logger.info(f"[{conn.id}] Client {conn.peer} connected. Thread dispatched.")
        return True

    def _on_exit(self, worker: ConnectionWorker):
        with self._lock:
            self._workers.discard(worker)
            if worker.failed:
                self.total_failed += 1

    def shutdown(self, timeout: Optional[float] = None):
        """
        Close every open connection and wait for the workers to exit.

        Each connection is aborted, which wakes its handler out of the
        blocking read. The handler then answers with the usual QUIT
        response (best effort) and closes the socket itself.

        Args:
            timeout: Total seconds to wait for all workers. None = no limit.
        """
        with self._lock:
            workers = list(self._workers)

        if not workers:
            return

        logger.info(f"Closing {len(workers)} open connection(s)...")
        for worker in workers:
            worker.conn.abort()

        deadline = None if timeout is None else time.time() + timeout
        for worker in workers:
            remaining = None if deadline is None else max(0.0, deadline - time.time())
            worker.join(remaining)
            if worker.is_alive():
                logger.warning(f"[{worker.conn.id}] Worker did not stop in time")

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def active(self) -> int:
        """Number of connections currently being served."""
        with self._lock:
            return len(self._workers)

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                "active": len(self._workers),
                "spawned": self.total_spawned,
                "rejected": self.total_rejected,
                "failed": self.total_failed,
            }
