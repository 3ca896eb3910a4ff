"""REST client for downloading issues from the GitHub API.

Implements exponential backoff with jitter for rate limiting per:
https://docs.github.com/en/rest/using-the-rest-api/rate-limits-for-the-rest-api
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Self, TypeVar

import httpx

from bugreport.logging import get_logger
from bugreport.repository import Repository

logger = get_logger(__name__)

# Default timeout for HTTP requests (connect, read, write, pool)
DEFAULT_TIMEOUT = httpx.Timeout(10.0, read=30.0)

# GitHub API default base URL
DEFAULT_GITHUB_API_URL = "https://api.github.com"

# GitHub maximum page size
PAGE_SIZE = 100

VALID_STATES = frozenset({"open", "closed", "all"})

T = TypeVar("T")

__all__ = [
    "DEFAULT_RETRY_CONFIG",
    "GitHubClientError",
    "GitHubIssueClient",
    "GitHubRateLimitError",
    "GitHubRetryConfig",
]


@dataclass(frozen=True)
class GitHubRetryConfig:
    """Configuration for retry behavior with exponential backoff.

    Attributes:
        max_retries: Maximum number of retry attempts (default: 4).
        initial_delay: Initial delay in seconds before first retry (default: 1.0).
        max_delay: Maximum delay in seconds between retries (default: 60.0).
        jitter_min: Minimum jitter multiplier (default: 0.7).
        jitter_max: Maximum jitter multiplier (default: 1.3).
    """

    max_retries: int = 4
    initial_delay: float = 1.0
    max_delay: float = 60.0
    jitter_min: float = 0.7
    jitter_max: float = 1.3


# Default retry configuration per GitHub recommendations
DEFAULT_RETRY_CONFIG = GitHubRetryConfig()


class GitHubClientError(Exception):
    """Raised when a GitHub API operation fails."""

    pass


class GitHubRateLimitError(GitHubClientError):
    """Raised when rate limit is exceeded and all retries are exhausted."""

    pass


def _calculate_backoff_delay(
    attempt: int,
    config: GitHubRetryConfig,
    retry_after: float | None = None,
) -> float:
    """Calculate the delay before the next retry attempt.

    Args:
        attempt: Current retry attempt number (0-indexed).
        config: Retry configuration.
        retry_after: Optional Retry-After header value in seconds.

    Returns:
        Delay in seconds before next retry.
    """
    if retry_after is not None:
        base_delay = retry_after
    else:
        base_delay = min(config.initial_delay * (2**attempt), config.max_delay)

    jitter = random.uniform(config.jitter_min, config.jitter_max)
    return base_delay * jitter


def _check_rate_limit_warning(response: httpx.Response) -> None:
    """Log a warning if rate limit is near exhaustion."""
    remaining = response.headers.get("X-RateLimit-Remaining")
    if remaining is None:
        return
    try:
        remaining_int = int(remaining)
    except ValueError:
        return
    if remaining_int <= 10:
        logger.warning(
            "GitHub rate limit near exhaustion. Remaining: %s, Reset: %s",
            remaining,
            response.headers.get("X-RateLimit-Reset", "unknown"),
        )


def _get_retry_after(response: httpx.Response) -> float | None:
    """Extract the wait time from Retry-After or X-RateLimit-Reset headers.

    Returns:
        Seconds to wait, or None if neither header is usable.
    """
    retry_after = response.headers.get("Retry-After")
    if retry_after is not None:
        try:
            return float(retry_after)
        except ValueError:
            logger.warning("Invalid Retry-After header value: %s", retry_after)

    reset_time = response.headers.get("X-RateLimit-Reset")
    if reset_time is not None:
        try:
            delay = int(reset_time) - int(time.time())
            if delay > 0:
                return float(delay)
        except ValueError:
            logger.warning("Invalid X-RateLimit-Reset header value: %s", reset_time)

    return None


def _is_rate_limited(response: httpx.Response) -> bool:
    # GitHub uses 403 (primary and secondary limits) and 429
    if response.status_code == 429:
        return True
    if response.status_code != 403:
        return False
    remaining = response.headers.get("X-RateLimit-Remaining")
    if remaining is None:
        return True
    try:
        return int(remaining) == 0
    except ValueError:
        return True


def _execute_with_retry(
    operation: Callable[[], T],
    config: GitHubRetryConfig = DEFAULT_RETRY_CONFIG,
) -> T:
    """Execute an operation, retrying while GitHub reports rate limiting.

    Args:
        operation: Callable performing the HTTP request. It must raise
            httpx.HTTPStatusError for error responses.
        config: Retry configuration.

    Returns:
        Result from the operation.

    Raises:
        GitHubRateLimitError: If all retries are exhausted.
        httpx.HTTPStatusError: For errors other than rate limiting.
    """
    attempt = 0
    while True:
        try:
            return operation()
        except httpx.HTTPStatusError as e:
            if not _is_rate_limited(e.response):
                raise
            if attempt >= config.max_retries:
                raise GitHubRateLimitError(
                    f"Rate limit exceeded after {config.max_retries} retries"
                ) from e

            delay = _calculate_backoff_delay(attempt, config, _get_retry_after(e.response))
            logger.warning(
                "Rate limited (attempt %s/%s). Retrying in %.2fs",
                attempt + 1,
                config.max_retries + 1,
                delay,
            )
            time.sleep(delay)
            attempt += 1


class GitHubIssueClient:
    """Downloads the issues and pull requests of repositories.

    Supports both GitHub.com and GitHub Enterprise via configurable base URL,
    and reuses one pooled httpx.Client for all requests.

    Example:
        with GitHubIssueClient(token) as client:
            raw_issues = client.list_issues(repository, state="all")
    """

    def __init__(
        self,
        token: str = "",
        base_url: str | None = None,
        timeout: httpx.Timeout | None = None,
        retry_config: GitHubRetryConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the GitHub issue client.

        Args:
            token: GitHub personal access token. Anonymous requests are made
                when empty.
            base_url: Optional custom API base URL for GitHub Enterprise.
                Defaults to "https://api.github.com".
            timeout: Optional custom timeout configuration.
            retry_config: Optional retry configuration for rate limiting.
            transport: Optional httpx transport, e.g. a MockTransport in tests.
        """
        self.base_url = (base_url or DEFAULT_GITHUB_API_URL).rstrip("/")
        self.timeout = timeout or DEFAULT_TIMEOUT
        self.retry_config = retry_config or DEFAULT_RETRY_CONFIG
        self._transport = transport
        self._headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            self._headers["Authorization"] = f"Bearer {token}"
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=self.timeout, headers=self._headers, transport=self._transport
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def list_issues(self, repository: Repository, state: str = "open") -> list[dict[str, Any]]:
        """List all issues and pull requests of a repository.

        Follows the ``Link: <...>; rel="next"`` headers until the last page.

        Args:
            repository: The repository to download.
            state: "open", "closed" or "all".

        Returns:
            Raw issue objects in the GitHub REST shape.

        Raises:
            ValueError: If state is not a valid issue state.
            GitHubRateLimitError: If rate limit retries are exhausted.
            GitHubClientError: If any request fails.
        """
        if state not in VALID_STATES:
            raise ValueError(f"Invalid issue state '{state}', expected one of: open, closed, all")

        url: str | None = f"{self.base_url}/repos/{repository.repo_name}/issues"
        params: dict[str, str | int] | None = {"state": state, "per_page": PAGE_SIZE}
        issues: list[dict[str, Any]] = []
        ctx_logger = logger.with_context(repo=repository.repo_name)

        while url is not None:
            page, url = self._get_page(url, params)
            # The next-page URL already carries the query parameters
            params = None
            issues.extend(page)
            ctx_logger.debug("Fetched %d issues (%d so far)", len(page), len(issues))

        ctx_logger.info("Fetched %d issues from %s", len(issues), repository.repo_name)
        return issues

    def _get_page(
        self, url: str, params: dict[str, str | int] | None
    ) -> tuple[list[dict[str, Any]], str | None]:
        def do_get() -> httpx.Response:
            response = self._get_client().get(url, params=params)
            _check_rate_limit_warning(response)
            response.raise_for_status()
            return response

        try:
            response = _execute_with_retry(do_get, self.retry_config)
        except httpx.TimeoutException as e:
            raise GitHubClientError(f"GitHub request timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            error_msg = f"GitHub request failed with status {e.response.status_code}"
            try:
                error_data = e.response.json()
                if "message" in error_data:
                    error_msg += f": {error_data['message']}"
            except (ValueError, KeyError, TypeError):
                pass
            raise GitHubClientError(error_msg) from e
        except httpx.RequestError as e:
            raise GitHubClientError(f"GitHub request failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise GitHubClientError(f"Invalid JSON in GitHub response: {e}") from e
        if not isinstance(data, list):
            raise GitHubClientError("Unexpected GitHub response: expected a list of issues")

        next_url = response.links.get("next", {}).get("url")
        return data, next_url
