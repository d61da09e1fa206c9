# Overview: Product row locking and conflict retry for sale/purchase batches.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

# Lock waits / deadlocks, and Product.version_id mismatches
RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Lock the product rows a batch is about to change.

    Server databases hold the lock until the batch commits, so two sales of
    the same product are serialized. SQLite ignores FOR UPDATE; there a
    concurrent write is caught by Product.version_id at flush instead.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, label: str = "batch"):
    """
    Run a whole batch attempt, retrying it on lock or version conflicts.

    Only use this where a failed attempt leaves nothing behind (a
    transactional unit of work): every retry replays the batch from the
    first line item. Backoff doubles per attempt; the last conflict is
    re-raised.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt == attempts:
                raise
            current_app.logger.warning(
                "Write conflict on %s (attempt %s/%s), retrying: %s", label, attempt, attempts, exc
            )
            time.sleep(backoff_base * (2 ** (attempt - 1)))
