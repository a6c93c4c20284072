"""Account worker.

One :class:`AccountWorker` runs per enabled account. It owns a single mail
server connection and moves through the states of
:class:`~mail_indexer.core.models.WorkerState`::

    DISCONNECTED -> CONNECTING -> ENUMERATING -> LISTENING
    LISTENING -> RECONNECTING -> CONNECTING        (connection lost)
    any -> SHUTTING_DOWN -> STOPPED                (explicit stop)

While enumerating, every selectable mailbox is backfilled and then subscribed.
While listening, the worker visits its subscriptions in turn on the one
connection: select the mailbox, drain any growth of its message count, then
IDLE on it for a short slice. A notification is only trusted after the mailbox
has been selected again, so a new message is always attributed to the mailbox
that was actually selected. A mailbox the server rejects is retried on the
next cycle and only dropped after repeated rejections. Servers without IDLE
are polled: the worker re-selects each mailbox every ``IMAP_IDLE_SECONDS``.

Stopping is cooperative. The shutdown flag is checked before each reconnect,
between mailboxes, between backfilled messages and between IDLE slices; the
message currently being indexed always completes.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from mail_indexer.core.exceptions import CapabilityUnsupported, ConnectionFailure, MailboxCommandError
from mail_indexer.core.models import Account, WorkerState

from .connectors.base import MailboxClient, flatten_mailboxes
from .processor import IndexOutcome, MessageIndexer

logger = logging.getLogger(__name__)

FETCH_BATCH_SIZE = 50
# Consecutive rejected selects before a mailbox is dropped until the next connect
MAX_MAILBOX_REJECTIONS = 3


def backoff_delay(attempts: int, base: float = 1.0, maximum: float = 30.0) -> float:
    """Return the reconnect delay in seconds after ``attempts`` consecutive failures."""
    return min(maximum, base * (2 ** attempts))


@dataclass
class MailboxSubscription:
    """A mailbox the worker listens on, with the last message count it saw."""

    mailbox: str
    listener: Callable[[str, int], None]
    last_count: int = 0
    rejections: int = 0

    def drain(self, total: int) -> None:
        """Notify the listener once for every sequence number past ``last_count``."""
        if total < self.last_count:
            # Messages were expunged; sequence numbers shifted down. A message
            # that arrived in the same window is not seen here; the backfill
            # after the next reconnect picks it up.
            self.last_count = total
            return
        for seq in range(self.last_count + 1, total + 1):
            self.listener(self.mailbox, seq)
            self.last_count = seq


class AccountWorker:
    """Ingest one account's mail on a dedicated thread.

    Parameters
    ----------
    account:
        Snapshot of the account row. Never mutated.
    client_factory:
        Zero-argument callable returning a fresh, unconnected
        :class:`MailboxClient` carrying the decrypted credentials.
    indexer:
        :class:`MessageIndexer` used for both backfill and live messages.
    config:
        Optional :class:`~mail_indexer.core.config.Config`; defaults apply
        when omitted.
    timer_factory:
        Builds the cancellable reconnect timer, ``threading.Timer`` by default.
    """

    def __init__(
        self,
        account: Account,
        client_factory: Callable[[], MailboxClient],
        indexer: MessageIndexer,
        config: Any = None,
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        self.account = account
        self.client_factory = client_factory
        self.indexer = indexer
        self.timer_factory = timer_factory

        self.backfill_days = int(getattr(config, "BACKFILL_DAYS", 30))
        self.reconnect_base = float(getattr(config, "RECONNECT_BASE_SECONDS", 1.0))
        self.reconnect_max = float(getattr(config, "RECONNECT_MAX_SECONDS", 30.0))
        self.idle_seconds = float(getattr(config, "IMAP_IDLE_SECONDS", 10.0))
        self.stop_timeout = float(getattr(config, "WORKER_STOP_TIMEOUT_SECONDS", 15.0))

        self.client: Optional[MailboxClient] = None
        self.connected = False
        self.reconnect_attempts = 0
        self.subscriptions: List[MailboxSubscription] = []
        self.idle_supported = True

        self._state = WorkerState.DISCONNECTED
        self._shutting_down = threading.Event()
        self._lock = threading.Lock()
        self._timer: Optional[Any] = None
        self._thread: Optional[threading.Thread] = None
        # True while connect_and_listen may be using self.client
        self._busy = False
        self._logout_pending = False

    # =============================================================================
    # Lifecycle
    # =============================================================================

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down.is_set()

    def start(self) -> threading.Thread:
        """Run :meth:`connect_and_listen` on a new daemon thread."""
        thread = threading.Thread(
            target=self.connect_and_listen,
            name=f"account-worker-{self.account.id}",
            daemon=True,
        )
        self._thread = thread
        thread.start()
        logger.info("Worker started for account %s (%s)", self.account.id, self.account.name)
        return thread

    def connect_and_listen(self) -> None:
        """Connect, enumerate and listen until the connection drops or the worker stops."""
        with self._lock:
            if self.shutting_down:
                return
            self._thread = threading.current_thread()
            self._busy = True
        try:
            self._run()
        finally:
            with self._lock:
                self._busy = False
                client = self.client if self._logout_pending else None
                self._logout_pending = False
            if client is not None:
                # stop() left the logout to this thread
                self._discard(client)

    def _run(self) -> None:
        self._set_state(WorkerState.CONNECTING)

        client = self.client_factory()
        self.client = client
        self.idle_supported = True
        try:
            client.connect()
        except ConnectionFailure as exc:
            logger.error("Failed to connect IMAP for account %s: %s", self.account.id, exc)
            self.connected = False
            self._schedule_reconnect()
            return

        if self.shutting_down:
            self._discard(client)
            return
        self.connected = True
        self.reconnect_attempts = 0
        logger.info("IMAP connected for account %s (%s)", self.account.id, self.account.name)

        try:
            self._set_state(WorkerState.ENUMERATING)
            self._enumerate(client)
            if not self.shutting_down:
                self._set_state(WorkerState.LISTENING)
                self._listen(client)
        except ConnectionFailure as exc:
            logger.warning("IMAP connection closed for account %s: %s", self.account.id, exc)
        except Exception as exc:
            logger.exception("Unexpected error in worker for account %s: %s", self.account.id, exc)

        self.connected = False
        if self.shutting_down:
            return
        self._discard(client)
        self._schedule_reconnect()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the worker and log out.

        Safe to call from any thread, including the worker's own thread (for
        example from a listener), in which case the wait is skipped. While the
        worker thread is still running, the logout is left to that thread.
        """
        self._shutting_down.set()
        self._set_state(WorkerState.SHUTTING_DOWN)

        with self._lock:
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

        thread = self._thread
        if thread is not None and thread is not threading.current_thread() and thread.is_alive():
            thread.join(self.stop_timeout if timeout is None else timeout)

        with self._lock:
            # The client is not thread-safe; a running worker logs out on exit
            deferred = self._busy
            if deferred:
                self._logout_pending = True
        if deferred and thread is not threading.current_thread():
            logger.warning(
                "Worker for account %s did not finish in time; it logs out when it does",
                self.account.id,
            )

        client = self.client
        if client is not None and not deferred:
            try:
                client.logout()
            except (ConnectionFailure, MailboxCommandError) as exc:
                logger.warning("Error logging out IMAP client for account %s: %s", self.account.id, exc)

        self.connected = False
        self._state = WorkerState.STOPPED
        logger.info("Worker stopped for account %s", self.account.id)

    def status(self) -> Dict[str, Any]:
        return {
            "account_id": self.account.id,
            "account_name": self.account.name,
            "state": self.state.value,
            "connected": self.connected,
            "reconnect_attempts": self.reconnect_attempts,
            "mailboxes": [sub.mailbox for sub in self.subscriptions],
        }

    # =============================================================================
    # Reconnect
    # =============================================================================

    def _schedule_reconnect(self) -> None:
        with self._lock:
            if self.shutting_down:
                return
            self.reconnect_attempts += 1
            delay = backoff_delay(self.reconnect_attempts, self.reconnect_base, self.reconnect_max)
            self._set_state(WorkerState.RECONNECTING)
            logger.info("Reconnecting to IMAP for account %s in %.1fs", self.account.id, delay)
            timer = self.timer_factory(delay, self._reconnect)
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _reconnect(self) -> None:
        with self._lock:
            self._timer = None
        if not self.shutting_down:
            self.connect_and_listen()

    def _discard(self, client: MailboxClient) -> None:
        try:
            client.logout()
        except (ConnectionFailure, MailboxCommandError) as exc:
            logger.debug("Ignoring logout error on dead connection for account %s: %s", self.account.id, exc)

    # =============================================================================
    # Enumeration, backfill and subscriptions
    # =============================================================================

    def _enumerate(self, client: MailboxClient) -> None:
        self.subscriptions = []
        try:
            nodes = client.list_mailboxes()
        except MailboxCommandError as exc:
            logger.warning("Could not list mailboxes for account %s: %s", self.account.id, exc)
            return

        for node in flatten_mailboxes(nodes):
            if self.shutting_down:
                return
            if not node.selectable:
                logger.debug("Skipping container folder %s", node.name)
                continue
            try:
                self._backfill(client, node.name)
                if self.shutting_down:
                    return
                self._subscribe(client, node.name)
            except ConnectionFailure:
                raise
            except Exception as exc:
                logger.warning(
                    "Could not fetch or subscribe mailbox %s for account %s: %s",
                    node.name,
                    self.account.id,
                    exc,
                )

    def _backfill(self, client: MailboxClient, mailbox: str) -> None:
        client.open_mailbox(mailbox, readonly=True)
        since = datetime.now(timezone.utc) - timedelta(days=self.backfill_days)
        seqs = client.search_since(since)
        if not seqs:
            logger.debug("No messages to backfill in %s for account %s", mailbox, self.account.id)
            return

        logger.info("Backfilling %d messages from %s for account %s", len(seqs), mailbox, self.account.id)
        counts = {outcome: 0 for outcome in IndexOutcome}
        for start in range(0, len(seqs), FETCH_BATCH_SIZE):
            if self.shutting_down:
                break
            for message in client.fetch(seqs[start:start + FETCH_BATCH_SIZE]):
                if self.shutting_down:
                    break
                try:
                    counts[self.indexer.index_message(self.account.id, mailbox, message)] += 1
                except Exception as exc:
                    counts[IndexOutcome.FAILED] += 1
                    logger.warning(
                        "Failed to process message %s in %s for account %s: %s",
                        message.seq,
                        mailbox,
                        self.account.id,
                        exc,
                    )

        logger.info(
            "Backfill of %s for account %s: %d indexed, %d duplicate, %d failed",
            mailbox,
            self.account.id,
            counts[IndexOutcome.INDEXED],
            counts[IndexOutcome.DUPLICATE],
            counts[IndexOutcome.FAILED],
        )

    def _subscribe(self, client: MailboxClient, mailbox: str) -> None:
        count = client.open_mailbox(mailbox, readonly=False)
        self.subscriptions.append(
            MailboxSubscription(
                mailbox=mailbox,
                listener=lambda name, total: self._on_new_message(client, name, total),
                last_count=count,
            )
        )
        logger.debug("Subscribed to %s for account %s (%d messages)", mailbox, self.account.id, count)

    # =============================================================================
    # Listening
    # =============================================================================

    def _listen(self, client: MailboxClient) -> None:
        logger.info(
            "Listening on %d mailboxes for account %s", len(self.subscriptions), self.account.id
        )
        while not self.shutting_down:
            if not self.subscriptions:
                if self._shutting_down.wait(self.idle_seconds):
                    return
                client.noop()
                continue

            for sub in list(self.subscriptions):
                if self.shutting_down:
                    return
                try:
                    sub.drain(client.open_mailbox(sub.mailbox, readonly=False))
                    sub.rejections = 0
                    if self.shutting_down:
                        return
                    if self.idle_supported and client.wait_for_exists(self.idle_seconds):
                        # Trust the total only once this mailbox is selected again
                        sub.drain(client.open_mailbox(sub.mailbox, readonly=False))
                except CapabilityUnsupported as exc:
                    logger.warning(
                        "IDLE unavailable for account %s, polling every %.0fs instead: %s",
                        self.account.id,
                        self.idle_seconds,
                        exc,
                    )
                    self.idle_supported = False
                except MailboxCommandError as exc:
                    self._reject(sub, exc)

            if not self.idle_supported and self._shutting_down.wait(self.idle_seconds):
                return

    def _reject(self, sub: MailboxSubscription, exc: MailboxCommandError) -> None:
        sub.rejections += 1
        if sub.rejections < MAX_MAILBOX_REJECTIONS:
            logger.warning(
                "Mailbox %s rejected for account %s (%d/%d), retrying next cycle: %s",
                sub.mailbox,
                self.account.id,
                sub.rejections,
                MAX_MAILBOX_REJECTIONS,
                exc,
            )
            return
        logger.error(
            "Dropping subscription to %s for account %s after %d rejections: %s",
            sub.mailbox,
            self.account.id,
            sub.rejections,
            exc,
        )
        self.subscriptions.remove(sub)

    def _on_new_message(self, client: MailboxClient, mailbox: str, total: int) -> None:
        if total <= 0:
            return
        try:
            for message in client.fetch([total]):
                outcome = self.indexer.index_message(self.account.id, mailbox, message)
                if outcome is IndexOutcome.DUPLICATE:
                    logger.debug("New message %s in %s was already indexed", total, mailbox)
        except ConnectionFailure:
            raise
        except Exception as exc:
            logger.warning(
                "Failed to handle new message %s in %s for account %s: %s",
                total,
                mailbox,
                self.account.id,
                exc,
            )

    # ------------------------------------------------------------------
    def _set_state(self, state: WorkerState) -> None:
        if self.shutting_down and state not in (WorkerState.SHUTTING_DOWN, WorkerState.STOPPED):
            return
        if self._state is WorkerState.STOPPED:
            return
        self._state = state
        logger.debug("Account %s worker state -> %s", self.account.id, state.value)
