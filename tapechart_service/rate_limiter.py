# tapechart_service/rate_limiter.py
import os
import time
from collections import deque
from typing import Any, Deque, Dict, Tuple

from fastapi import Depends, HTTPException, status

from common.logging_config import get_logger

from .auth import get_current_user_claims

logger = get_logger(__name__)

WINDOW_SECONDS = int(os.getenv("TAPECHART_WRITE_WINDOW_SECONDS", "60"))
MAX_WRITES_PER_WINDOW = int(os.getenv("TAPECHART_MAX_WRITES_PER_WINDOW", "30"))

# (organization_id, user_id) -> instants of accepted writes, oldest first
_write_log: Dict[Tuple[int, int], Deque[float]] = {}


def reservation_rate_limiter(claims: Dict[str, Any] = Depends(get_current_user_claims)):
    """
    Throttle reservation and block writes of one user within one organization.

    A user id shared by two organizations gets a separate budget in each.
    """
    scope = (claims["organization_id"], claims["user_id"])
    now = time.monotonic()

    writes = _write_log.setdefault(scope, deque())
    while writes and writes[0] <= now - WINDOW_SECONDS:
        writes.popleft()

    if len(writes) >= MAX_WRITES_PER_WINDOW:
        logger.warning("write rate limit hit", organization_id=scope[0], user_id=scope[1])
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many reservation changes in a short time",
        )

    writes.append(now)


def reset_rate_limits() -> None:
    _write_log.clear()
