"""
Batched document writer.

Buffers normalized documents and submits them to the backing store in bounded
batches, keeping the attempted/confirmed counters the progress reports are
built from.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from docport.common.cancellation import CancellationToken
from docport.common.metrics import batch_write_duration_seconds
from docport.errors import WriteError
from docport.progress import ErrorCallback
from docport.storage.adapter import DocumentStore, StoreConnectionError, StoreError

logger = logging.getLogger(__name__)


class DocumentWriter:
    """
    Writes documents to one namespace in batches.

    With ``stop_on_errors`` batches are inserted ordered and the first rejected
    document raises ``WriteError`` after the documents before it have been
    persisted; nothing after it is attempted. Otherwise batches are inserted
    unordered and every rejected document is passed to ``error_callback``.

    Invariant: ``docs_written <= docs_attempted``.
    """

    def __init__(
        self,
        store: DocumentStore,
        namespace: str,
        batch_size: int = 1000,
        stop_on_errors: bool = False,
        error_callback: Optional[ErrorCallback] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.store = store
        self.namespace = namespace
        self.batch_size = batch_size
        self.stop_on_errors = stop_on_errors
        self.error_callback = error_callback

        self.docs_attempted = 0
        self.docs_written = 0
        self.batches_written = 0
        self._batch: List[Tuple[int, Dict[str, Any]]] = []

    @property
    def pending(self) -> int:
        return len(self._batch)

    def write(
        self,
        document: Dict[str, Any],
        index: int,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        """
        Queue a document, submitting the batch once it is full.

        Args:
            document: Normalized document
            index: Source row/document number, used in error records
            cancel_token: A cancelled token drops the batch instead of
                submitting it
        """
        self._batch.append((index, document))
        if len(self._batch) >= self.batch_size:
            self.flush(cancel_token)

    def flush(self, cancel_token: Optional[CancellationToken] = None) -> bool:
        """
        Submit the buffered batch.

        Returns:
            False if the batch was dropped because of cancellation

        Raises:
            WriteError: On the first rejected document with stop_on_errors,
                or when the store fails the whole batch
            StoreConnectionError: If the store is unreachable
        """
        if not self._batch:
            return True
        batch, self._batch = self._batch, []
        if cancel_token is not None and cancel_token.cancelled:
            logger.debug(f"Dropped batch of {len(batch)} documents after cancellation")
            return False

        start_time = time.time()
        try:
            result = self.store.insert_many(
                self.namespace,
                [doc for _, doc in batch],
                ordered=self.stop_on_errors,
            )
        except StoreConnectionError:
            raise
        except StoreError as e:
            raise WriteError(
                f"Failed to write batch to {self.namespace}: {e}",
                index=batch[0][0],
            ) from e
        finally:
            batch_write_duration_seconds.observe(time.time() - start_time)

        self.batches_written += 1
        self.docs_written += result.inserted_count

        if result.failures and self.stop_on_errors:
            failure = min(result.failures, key=lambda f: f.index)
            self.docs_attempted += failure.index + 1
            index, document = batch[failure.index]
            raise WriteError(failure.message, index=index, data=document)

        self.docs_attempted += len(batch)
        for failure in result.failures:
            index, document = batch[failure.index]
            if self.error_callback is not None:
                self.error_callback(
                    WriteError(failure.message, index=index, data=document).to_record())

        logger.debug(
            f"Wrote batch {self.batches_written} to {self.namespace}: "
            f"{result.inserted_count}/{len(batch)} documents"
        )
        return True
