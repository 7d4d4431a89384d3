"""Retry logic with exponential backoff"""

import asyncio
from typing import Awaitable, Callable, Any, Type
from claimdesk.utils.logging import get_logger
from claimdesk.utils.errors import ClaimDeskError

logger = get_logger(__name__)


async def retry_with_exponential_backoff(
    func: Callable[..., Awaitable[Any]],
    max_retries: int = 3,
    base_delay: float = 2,
    max_delay: float = 30,
    *args,
    error_class: Type[ClaimDeskError] = ClaimDeskError,
    **kwargs
) -> Any:
    """
    Retry a coroutine function with exponential backoff

    Args:
        func: Coroutine function to retry
        max_retries: Maximum attempts
        base_delay: Base delay in seconds
        max_delay: Max delay cap in seconds
        *args, **kwargs: Arguments to pass to func
        error_class: Exception raised once retries are exhausted

    Returns:
        Function result

    Raises:
        error_class: If all retries exhausted
    """
    for attempt in range(max_retries):
        try:
            return await func(*args, **kwargs)

        except Exception as e:
            if attempt == max_retries - 1:
                logger.error(f"All {max_retries} retry attempts exhausted")
                raise error_class(f"Failed after {max_retries} attempts: {e}") from e

            delay = min(base_delay * (2 ** attempt), max_delay)
            logger.warning(f"Attempt {attempt + 1} failed, retrying in {delay}s: {e}")
            await asyncio.sleep(delay)
