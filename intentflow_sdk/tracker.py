"""
Transaction history and status tracking.
"""
import logging
import threading
import time
from typing import Optional, List, Callable

from .connection import ConnectionManager
from .exceptions import DuplicateHashError, NotConnectedError, UnknownTransactionError
from .models import TransactionRecord, TxStatus

DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_RESOLUTION_TIMEOUT = 60.0


class TransactionTracker:
    """
    Most-recent-first history of broadcast transactions.

    Records only move forward: once a record is ``success`` or ``failed``
    a later ``pending`` update is ignored.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        on_success: Optional[Callable[[TransactionRecord], None]] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.connection = connection
        self.on_success = on_success
        self.logger = logger or logging.getLogger(__name__)
        self._lock = threading.RLock()
        self._history: List[TransactionRecord] = []

    def record(self, tx_hash: str) -> TransactionRecord:
        """
        Start tracking a freshly broadcast transaction.

        Raises:
            DuplicateHashError: If the hash is already tracked
        """
        with self._lock:
            if any(r.hash == tx_hash for r in self._history):
                raise DuplicateHashError(f"Transaction {tx_hash} is already tracked")
            record = TransactionRecord(hash=tx_hash)
            self._history.insert(0, record)
        self.logger.debug(f"Tracking transaction {tx_hash}")
        return record

    def update_status(self, tx_hash: str, new_record: TransactionRecord) -> TransactionRecord:
        """
        Replace the record for ``tx_hash``.

        A transition into ``success`` fires the ``on_success`` hook once.
        Errors raised by the hook are logged, never propagated.

        Returns:
            The record now stored

        Raises:
            UnknownTransactionError: If the hash is not tracked
        """
        with self._lock:
            for index, current in enumerate(self._history):
                if current.hash == tx_hash:
                    break
            else:
                raise UnknownTransactionError(f"Transaction {tx_hash} is not tracked")

            if current.is_terminal and new_record.status is TxStatus.PENDING:
                return current
            if new_record.hash != tx_hash:
                new_record = new_record.model_copy(update={"hash": tx_hash})
            self._history[index] = new_record
            became_successful = (
                new_record.status is TxStatus.SUCCESS and current.status is not TxStatus.SUCCESS
            )

        if new_record.status is TxStatus.FAILED and current.status is not TxStatus.FAILED:
            self.logger.warning(f"Transaction {tx_hash} failed: {new_record.error}")
        if became_successful:
            self.logger.info(f"Transaction {tx_hash} succeeded at height {new_record.block_height}")
            if self.on_success is not None:
                try:
                    self.on_success(new_record)
                except Exception as e:
                    self.logger.error(f"on_success hook failed for {tx_hash}: {e}")
        return new_record

    def poll(self, tx_hash: str) -> TransactionRecord:
        """
        Query the endpoint once and apply the result.

        Query failures (including a dropped connection) leave the record
        pending.
        """
        try:
            result = self.connection.query_status(tx_hash)
        except NotConnectedError as e:
            self.logger.warning(f"Cannot poll {tx_hash}: {e}")
            return self.get(tx_hash)
        return self.update_status(tx_hash, TransactionRecord.from_status(result))

    def wait_for_resolution(
        self,
        tx_hash: str,
        timeout: float = DEFAULT_RESOLUTION_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL
    ) -> TransactionRecord:
        """
        Poll until the transaction resolves or ``timeout`` elapses.

        Returns:
            The latest record, which is still pending on timeout
            or when the record is cleared from history meanwhile
        """
        deadline = time.monotonic() + timeout
        while True:
            try:
                record = self.poll(tx_hash)
            except UnknownTransactionError:
                self.logger.warning(f"Transaction {tx_hash} was removed from history while waiting")
                return TransactionRecord(hash=tx_hash)
            if record.is_terminal:
                return record
            if time.monotonic() >= deadline:
                self.logger.info(f"Transaction {tx_hash} still pending after {timeout:.0f}s")
                return record
            time.sleep(poll_interval)

    def get(self, tx_hash: str) -> TransactionRecord:
        with self._lock:
            for record in self._history:
                if record.hash == tx_hash:
                    return record
        raise UnknownTransactionError(f"Transaction {tx_hash} is not tracked")

    def history(self) -> List[TransactionRecord]:
        with self._lock:
            return list(self._history)

    def pending(self) -> List[TransactionRecord]:
        return [r for r in self.history() if r.status is TxStatus.PENDING]

    def clear(self) -> None:
        with self._lock:
            self._history.clear()
