"""Worker registry.

Maps account id to its running :class:`~ingestion.email.worker.AccountWorker`.
The registry is the only place that decides whether an account's worker is
running; at most one worker exists per account id.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional

from mail_indexer.core.models import Account

logger = logging.getLogger(__name__)


class WorkerRegistry:
    """Start, stop and look up account workers.

    Parameters
    ----------
    worker_factory:
        Callable building an unstarted worker for an :class:`Account`.
    stop_timeout:
        Seconds :meth:`stop` waits for a worker's thread to finish.
    """

    def __init__(self, worker_factory: Callable[[Account], Any], stop_timeout: Optional[float] = None) -> None:
        self.worker_factory = worker_factory
        self.stop_timeout = stop_timeout
        self._workers: Dict[int, Any] = {}
        self._lock = threading.Lock()

    def start(self, account: Account) -> bool:
        """Start a worker for ``account`` unless one is already registered.

        Returns:
            True if a new worker was started
        """
        with self._lock:
            if account.id in self._workers:
                logger.info("Worker already running for account %s", account.id)
                return False
            worker = self.worker_factory(account)
            self._workers[account.id] = worker
        try:
            worker.start()
        except Exception:
            with self._lock:
                if self._workers.get(account.id) is worker:
                    del self._workers[account.id]
            raise
        return True

    def stop(self, account_id: int) -> bool:
        """Stop and remove the worker of ``account_id``.

        Returns:
            True if a worker was registered
        """
        with self._lock:
            worker = self._workers.get(account_id)
        if worker is None:
            logger.debug("No worker registered for account %s", account_id)
            return False
        worker.stop(self.stop_timeout)
        with self._lock:
            if self._workers.get(account_id) is worker:
                del self._workers[account_id]
        return True

    def start_all(self, accounts: Iterable[Account]) -> int:
        """Start a worker for every enabled account; one failure does not stop the rest."""
        started = 0
        for account in accounts:
            if not account.enabled:
                continue
            try:
                if self.start(account):
                    started += 1
            except Exception as exc:
                logger.error("Failed to start worker for account %s: %s", account.id, exc)
        logger.info("Started %d account workers", started)
        return started

    def stop_all(self) -> None:
        for account_id in self.account_ids():
            try:
                self.stop(account_id)
            except Exception as exc:
                logger.error("Failed to stop worker for account %s: %s", account_id, exc)

    def get(self, account_id: int) -> Optional[Any]:
        with self._lock:
            return self._workers.get(account_id)

    def account_ids(self) -> List[int]:
        with self._lock:
            return list(self._workers)

    def status(self) -> List[Dict[str, Any]]:
        with self._lock:
            workers = list(self._workers.values())
        return [worker.status() for worker in workers]

    def __contains__(self, account_id: int) -> bool:
        with self._lock:
            return account_id in self._workers

    def __len__(self) -> int:
        with self._lock:
            return len(self._workers)
