import random
from datetime import datetime, timedelta, timezone
from typing import Optional

from app.settings import settings

def calculate_next_run(
    attempts: int,
    base_delay_seconds: int = 10,
    max_delay_seconds: int = 3600,
    jitter: bool = True,
    now: Optional[datetime] = None,
) -> datetime:
    """
    Calculates the next run time using exponential backoff with optional jitter.

    Formula:
        delay = min(base * (2 ^ attempts), max_delay)
        if jitter:
            delay = delay + random_uniform(0, 0.1 * delay)

    Args:
        attempts: Number of attempts made so far. attempts=1 means
                  "we failed once, when should we try again?"
        base_delay_seconds: 0 disables backoff entirely.

    Returns:
        datetime: The calculated timestamp (UTC).
    """
    now = now or datetime.now(timezone.utc)
    if base_delay_seconds <= 0:
        return now

    if attempts < 0:
        attempts = 0

    # 2^20 is ~1 million seconds (~11 days), which likely hits max_delay.
    safe_attempts = min(attempts, 20)

    delay = base_delay_seconds * (2 ** safe_attempts)

    if delay > max_delay_seconds:
        delay = max_delay_seconds

    if jitter:
        # Add up to 10% jitter to avoid thundering herd
        jitter_amount = delay * 0.1
        delay += random.uniform(0, jitter_amount)

    return now + timedelta(seconds=delay)

def next_available_at(attempts: int, now: Optional[datetime] = None) -> datetime:
    return calculate_next_run(
        attempts,
        base_delay_seconds=settings.RETRY_BASE_DELAY_SECONDS,
        max_delay_seconds=settings.RETRY_MAX_DELAY_SECONDS,
        now=now,
    )

def exhausted_reason(attempts: int, max_attempts: int) -> str:
    return f"Retry budget exhausted after {attempts}/{max_attempts} attempts"
