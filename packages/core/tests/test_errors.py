"""Tests for GitHub error classification and the retry helper."""

from unittest.mock import MagicMock, patch

import pytest
import requests
from github import GithubException, RateLimitExceededException

from quorum_core.utils.errors import get_error_status, is_rate_limit_error, is_transient_error, with_retry


def _gh_error(status, message="error", headers=None):
    return GithubException(status, {"message": message}, headers or {})


class TestClassification:
    def test_status_of_github_error(self):
        assert get_error_status(_gh_error(404)) == 404

    def test_status_of_other_error(self):
        assert get_error_status(ValueError("x")) is None

    def test_rate_limit_exception(self):
        assert is_rate_limit_error(RateLimitExceededException(403, {"message": "limit"}, {}))

    def test_403_with_exhausted_quota(self):
        assert is_rate_limit_error(_gh_error(403, headers={"X-RateLimit-Remaining": "0"}))

    def test_403_with_retry_after(self):
        assert is_rate_limit_error(_gh_error(403, headers={"Retry-After": "60"}))

    def test_403_secondary_limit_message(self):
        assert is_rate_limit_error(_gh_error(403, "You have exceeded a secondary rate limit"))

    def test_plain_403_is_permission_denial(self):
        error = _gh_error(403, "Resource not accessible by integration")
        assert not is_rate_limit_error(error)
        assert not is_transient_error(error)

    @pytest.mark.parametrize("status", [429, 500, 502, 503])
    def test_transient_statuses(self, status):
        assert is_transient_error(_gh_error(status))

    @pytest.mark.parametrize("status", [400, 404, 410, 422])
    def test_permanent_statuses(self, status):
        assert not is_transient_error(_gh_error(status))

    def test_network_errors_are_transient(self):
        assert is_transient_error(requests.exceptions.ConnectionError("reset"))
        assert is_transient_error(requests.exceptions.Timeout("slow"))
        assert is_transient_error(TimeoutError())


class TestWithRetry:
    def test_returns_first_success(self):
        operation = MagicMock(return_value="ok")
        assert with_retry(operation) == "ok"
        operation.assert_called_once()

    def test_retries_transient_then_succeeds(self):
        operation = MagicMock(side_effect=[_gh_error(502), "ok"])
        with patch("quorum_core.utils.errors.time.sleep") as sleep:
            assert with_retry(operation) == "ok"
        sleep.assert_called_once_with(1)

    def test_backoff_doubles(self):
        operation = MagicMock(side_effect=[_gh_error(500), _gh_error(500), "ok"])
        with patch("quorum_core.utils.errors.time.sleep") as sleep:
            with_retry(operation)
        assert [c.args[0] for c in sleep.call_args_list] == [1, 2]

    def test_non_transient_raises_immediately(self):
        operation = MagicMock(side_effect=_gh_error(404))
        with patch("quorum_core.utils.errors.time.sleep") as sleep:
            with pytest.raises(GithubException):
                with_retry(operation)
        operation.assert_called_once()
        sleep.assert_not_called()

    def test_final_transient_failure_propagates(self):
        operation = MagicMock(side_effect=_gh_error(503))
        with patch("quorum_core.utils.errors.time.sleep"):
            with pytest.raises(GithubException):
                with_retry(operation, max_retries=3)
        assert operation.call_count == 3
