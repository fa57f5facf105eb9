"""Tests for HTTP helpers including retry logic and error handling."""

import httpx
import pytest

from fee_sweeper.errors import RelayerRejected, TransportError
from fee_sweeper.helpers.constants import USER_AGENT
from fee_sweeper.helpers.http import (
    create_http_client,
    log_and_suppress_errors,
    retry_with_backoff,
)


class TestRetryWithBackoff:
    """Tests for retry_with_backoff decorator."""

    @pytest.mark.asyncio
    async def test_succeeds_on_first_try(self) -> None:
        """Test function succeeds without retries."""
        call_count = 0

        @retry_with_backoff(max_retries=3, base_delay=0.01, log_errors=False)
        async def success_func() -> str:
            nonlocal call_count
            call_count += 1
            return "success"

        result = await success_func()
        assert result == "success"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retries_on_http_error(self) -> None:
        """Test function retries on HTTP errors."""
        call_count = 0

        @retry_with_backoff(max_retries=3, base_delay=0.01, log_errors=False)
        async def failing_func() -> str:
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise httpx.HTTPError("Network error")
            return "success"

        result = await failing_func()
        assert result == "success"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_raises_after_max_retries(self) -> None:
        """Test function raises the last error after exhausting retries."""
        call_count = 0

        @retry_with_backoff(max_retries=3, base_delay=0.01, log_errors=False)
        async def always_fails() -> None:
            nonlocal call_count
            call_count += 1
            raise httpx.HTTPError(f"failure {call_count}")

        with pytest.raises(httpx.HTTPError, match="failure 3"):
            await always_fails()
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_custom_retry_on(self) -> None:
        """Test only the configured exception types are retried."""
        call_count = 0

        @retry_with_backoff(
            max_retries=4, base_delay=0, retry_on=(TransportError,), log_errors=False
        )
        async def flaky() -> str:
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                raise TransportError("connection reset")
            return "submitted"

        assert await flaky() == "submitted"
        assert call_count == 2

    @pytest.mark.asyncio
    async def test_non_retryable_error_propagates_immediately(self) -> None:
        """Test an exception outside retry_on is not retried."""
        call_count = 0

        @retry_with_backoff(
            max_retries=4, base_delay=0, retry_on=(TransportError,), log_errors=False
        )
        async def rejected() -> None:
            nonlocal call_count
            call_count += 1
            raise RelayerRejected(400, "bad note", "/wallet/w/redeem-note")

        with pytest.raises(RelayerRejected):
            await rejected()
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_logs_retries(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test retry attempts are logged when enabled."""
        call_count = 0

        @retry_with_backoff(max_retries=2, base_delay=0)
        async def once_flaky() -> str:
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                raise httpx.ConnectError("refused")
            return "ok"

        assert await once_flaky() == "ok"
        assert "once_flaky failed (attempt 1/2)" in caplog.text


class TestCreateHttpClient:
    """Tests for create_http_client."""

    @pytest.mark.asyncio
    async def test_sets_user_agent_and_timeout(self) -> None:
        async with create_http_client(timeout=12.0) as client:
            assert client.headers["user-agent"] == USER_AGENT
            assert client.timeout.read == 12.0

    @pytest.mark.asyncio
    async def test_extra_headers_merged(self) -> None:
        async with create_http_client(headers={"x-test": "1"}) as client:
            assert client.headers["x-test"] == "1"
            assert client.headers["user-agent"] == USER_AGENT


class TestLogAndSuppressErrors:
    """Tests for log_and_suppress_errors."""

    @pytest.mark.asyncio
    async def test_suppresses_and_logs(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test errors are logged and swallowed by default."""
        async with log_and_suppress_errors("wallet sweep"):
            raise TransportError("relayer down")

        assert "wallet sweep failed: relayer down" in caplog.text

    @pytest.mark.asyncio
    async def test_reraises_when_not_suppressing(self) -> None:
        with pytest.raises(TransportError):
            async with log_and_suppress_errors("wallet sweep", suppress=False):
                raise TransportError("relayer down")

    @pytest.mark.asyncio
    async def test_no_error_passes_through(self) -> None:
        ran = False
        async with log_and_suppress_errors("noop"):
            ran = True

        assert ran
