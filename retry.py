import logging
import time
from typing import Callable, TypeVar

from sqlalchemy.orm import Session

import config
from errors import ConflictError

logger = logging.getLogger("ledger.retry")

T = TypeVar("T")


def retry_on_conflict(
    fn: Callable[[], T],
    *,
    attempts: int | None = None,
    backoff: float | None = None,
    db: Session | None = None,
) -> T:
    """Run ``fn`` and re-run it on ConflictError, with exponential backoff.

    Every other error propagates on the first attempt. ``fn`` must re-read
    whatever it mutates; the session passed as ``db`` is expired between
    attempts so the next read sees the winner's write.
    """
    attempts = attempts or config.CONFLICT_RETRIES
    backoff = config.CONFLICT_BACKOFF if backoff is None else backoff

    attempt = 1
    while True:
        try:
            return fn()
        except ConflictError as exc:
            if attempt >= attempts:
                logger.warning("conflict_giveup entity=%s id=%s attempts=%s", exc.entity, exc.entity_id, attempt)
                raise
            logger.info("conflict_retry entity=%s id=%s attempt=%s", exc.entity, exc.entity_id, attempt)
            if db is not None:
                db.expire_all()
            if backoff:
                time.sleep(backoff * (2 ** (attempt - 1)))
            attempt += 1
