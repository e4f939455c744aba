"""Recovery from device memory exhaustion and failed resource teardown.

A combinatorial sweep creates thousands of textures; running out of device
memory on one case must cost that case at most, never the run.
"""

from __future__ import annotations

import gc
import time
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

from loguru import logger

from texzero.exceptions import DeviceOutOfMemoryError

T = TypeVar("T")


class Destroyable(Protocol):
    def destroy(self) -> None: ...


def retry_out_of_memory(
    attempt: Callable[[int], T],
    max_retries: int = 0,
    delay_seconds: float = 0.0,
    backoff_factor: float = 2.0,
) -> T:
    """Call ``attempt(1)``, ``attempt(2)``, ... until one fits in device memory.

    Each attempt is expected to lease its own device, so a retry starts from
    an empty allocation budget.

    Args:
        attempt: Runs the work; receives its 1-based attempt number.
        max_retries: Extra attempts after the first out-of-memory error.
        delay_seconds: Wait before the first retry.
        backoff_factor: Multiplier for the wait after each retry.

    Raises:
        DeviceOutOfMemoryError: From the last attempt, once retries are used up.
        ValueError: ``max_retries`` is negative.
    """
    if max_retries < 0:
        raise ValueError(f"max_retries must be >= 0, got {max_retries}")

    delay = delay_seconds
    number = 1
    while True:
        try:
            return attempt(number)
        except DeviceOutOfMemoryError as e:
            if number > max_retries:
                raise
            logger.warning(
                "Out of device memory on attempt {}/{}: {}. Retrying in {:.1f}s",
                number,
                max_retries + 1,
                e,
                delay,
            )
        time.sleep(delay)
        delay *= backoff_factor
        number += 1


def reclaim_device_memory(device: Any = None, attempt: int = 1) -> int:
    """Release memory still held for destroyed resources after an allocation failure.

    From the second attempt on, a full garbage collection runs first so that
    resources dropped without ``destroy()`` are finalized as well.

    Returns:
        Bytes the device reported as released (0 when it has no ``reclaim()``).
    """
    if attempt > 1:
        gc.collect()
    reclaim = getattr(device, "reclaim", None)
    if reclaim is None:
        return 0
    try:
        released = int(reclaim())
    except Exception as e:
        logger.warning("Device memory reclamation failed on attempt {}: {}", attempt, e)
        return 0

    still_allocated = getattr(device, "allocated_bytes", None)
    if still_allocated:
        logger.debug(
            "Reclaimed {} bytes on attempt {}; {} bytes still allocated",
            released,
            attempt,
            still_allocated,
        )
    else:
        logger.debug("Reclaimed {} bytes on attempt {}", released, attempt)
    return released


def destroy_quietly(resource: Destroyable | None) -> bool:
    """Destroy ``resource`` on a path that is already failing.

    A second error from teardown would hide the first one, so it is logged
    instead of raised.

    Returns:
        True if the resource was destroyed (or there was nothing to destroy).
    """
    if resource is None:
        return True
    try:
        resource.destroy()
    except Exception as e:
        logger.warning("Destroying {} failed: {}", type(resource).__name__, e)
        return False
    return True
