"""
Unit tests for startup retry.
"""

import pytest
from unittest.mock import AsyncMock, patch

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import StoreError
from shared.retry import RetryConfig, RetryError, retry_on_exception


@pytest.mark.asyncio
async def test_retries_with_fixed_delay_until_success():
    start = AsyncMock(side_effect=[StoreError("refused"), StoreError("refused"), None])
    start.__name__ = "start"

    with patch("shared.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
        await retry_on_exception((StoreError,), RetryConfig(max_attempts=5, base_delay=3.0, jitter=False))(start)()

    assert start.await_count == 3
    assert [call.args[0] for call in sleep.await_args_list] == [3.0, 3.0]


@pytest.mark.asyncio
async def test_exhausted_attempts_raise_retry_error():
    start = AsyncMock(side_effect=StoreError("refused"))
    start.__name__ = "start"

    with patch("shared.retry.asyncio.sleep", new_callable=AsyncMock):
        with pytest.raises(RetryError) as exc_info:
            await retry_on_exception((StoreError,), RetryConfig(max_attempts=2, base_delay=0.0))(start)()

    assert exc_info.value.attempts == 2
    assert isinstance(exc_info.value.last_exception, StoreError)
    assert start.await_count == 2


@pytest.mark.asyncio
async def test_unlisted_exceptions_are_not_retried():
    start = AsyncMock(side_effect=RuntimeError("boom"))
    start.__name__ = "start"

    with pytest.raises(RuntimeError):
        await retry_on_exception((StoreError,), RetryConfig(max_attempts=3, base_delay=0.0))(start)()

    assert start.await_count == 1
