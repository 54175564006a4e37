"""Two-phase write of one addressable field to the durable store."""
import logging
import time
from typing import Any, Sequence

from jquiz.models.quiz_models import WriteOutcome
from jquiz.monitoring import reconciliation_duration, reconciliation_outcomes
from jquiz.services.document_store import DocumentStore, PathNotFoundError, StoreError, nest

logger = logging.getLogger(__name__)


async def write_with_fallback(
    store: DocumentStore,
    user_id: str,
    path: Sequence[str],
    value: Any,
    field: str,
) -> WriteOutcome:
    """Write ``value`` at ``path``, creating the parent structure if it is missing.

    The targeted write runs first. Only a PathNotFoundError leads to the
    creating merge, which is attempted once. Store failures are logged and
    reported as WriteOutcome.FAILED; they are never raised.

    ``field`` is the metric label for the kind of slot being written.
    """
    started = time.perf_counter()
    outcome = WriteOutcome.PENDING
    try:
        try:
            await store.update_field(user_id, path, value)
            outcome = WriteOutcome.COMMITTED
            return outcome
        except PathNotFoundError:
            logger.info(
                "Parent of %s missing for user %s, creating it",
                ".".join(path),
                user_id,
            )
        except StoreError as e:
            logger.error("Cloud save of %s failed for user %s: %s", ".".join(path), user_id, e)
            outcome = WriteOutcome.FAILED
            return outcome

        try:
            await store.merge(user_id, nest(path, value))
            outcome = WriteOutcome.FALLBACK_COMMITTED
        except StoreError as e:
            logger.error(
                "Fallback save of %s failed for user %s: %s", ".".join(path), user_id, e
            )
            outcome = WriteOutcome.FAILED
        return outcome
    finally:
        reconciliation_duration.labels(field=field).observe(time.perf_counter() - started)
        reconciliation_outcomes.labels(field=field, outcome=outcome.value).inc()
