"""
Tests for the provider retry policy.
"""

import pytest
import requests

from poresolve.retry import RetryError, RetryPolicy, is_transient_error, should_retry_http_status


class Flaky:
    """Callable that raises the queued exceptions before returning 'ok'."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    def __call__(self, *args, **kwargs):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


@pytest.fixture
def slept():
    return []


def _policy(slept, **overrides):
    options = dict(max_attempts=3, base_delay=0.5, retry_on=(requests.RequestException,))
    options.update(overrides)
    return RetryPolicy(sleep=slept.append, **options)


class TestSchedule:
    def test_doubles_per_retry(self):
        assert RetryPolicy(max_attempts=4, base_delay=0.5).delays() == [0.5, 1.0, 2.0]

    def test_capped_by_max_delay(self):
        policy = RetryPolicy(max_attempts=5, base_delay=2.0, max_delay=5.0)

        assert policy.delays() == [2.0, 4.0, 5.0, 5.0]

    def test_single_attempt_never_waits(self):
        assert RetryPolicy(max_attempts=1).delays() == []

    def test_zero_attempts_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestCall:
    def test_first_try(self, slept):
        func = Flaky()

        assert _policy(slept).call(func) == "ok"
        assert func.calls == 1
        assert slept == []

    def test_arguments_forwarded(self, slept):
        seen = []

        _policy(slept).call(lambda *a, **kw: seen.append((a, kw)), 1, flag=True)

        assert seen == [((1,), {"flag": True})]

    def test_recovers_after_transient_failures(self, slept):
        func = Flaky(requests.Timeout("slow"), requests.ConnectionError("reset"))

        assert _policy(slept).call(func) == "ok"
        assert func.calls == 3
        assert slept == [0.5, 1.0]

    def test_exhaustion_chains_last_error(self, slept):
        last = requests.Timeout("third")
        func = Flaky(requests.Timeout("first"), requests.Timeout("second"), last)

        with pytest.raises(RetryError, match="Failed after 3 attempts: third") as exc_info:
            _policy(slept).call(func)

        assert exc_info.value.__cause__ is last
        assert slept == [0.5, 1.0]

    def test_other_exception_types_propagate(self, slept):
        """Only the configured exception types are retried."""
        func = Flaky(KeyError("sku"))

        with pytest.raises(KeyError):
            _policy(slept).call(func)

        assert func.calls == 1

    def test_predicate_rejects_permanent_errors(self, slept):
        """A 400 response is a RequestException but not worth retrying."""
        response = requests.Response()
        response.status_code = 400
        func = Flaky(requests.HTTPError("bad request", response=response))

        with pytest.raises(requests.HTTPError):
            _policy(slept, retry_if=is_transient_error).call(func)

        assert func.calls == 1
        assert slept == []

    def test_on_retry_callback(self, slept):
        events = []
        error = requests.Timeout("slow")

        _policy(slept, on_retry=lambda *event: events.append(event)).call(Flaky(error))

        assert events == [(1, error, 0.5)]


class TestTransientDetection:
    @staticmethod
    def _http_error(status):
        response = requests.Response()
        response.status_code = status
        return requests.HTTPError(f"status {status}", response=response)

    @pytest.mark.parametrize("error", [
        requests.Timeout("read timed out"),
        requests.ConnectionError("refused"),
        TimeoutError(),
        Exception("Service Unavailable"),
        Exception("rate limit exceeded"),
    ])
    def test_transient(self, error):
        assert is_transient_error(error)

    @pytest.mark.parametrize("error", [
        ValueError("Invalid input"),
        KeyError("missing"),
        Exception("permission denied"),
    ])
    def test_permanent(self, error):
        assert not is_transient_error(error)

    def test_http_error_uses_status(self):
        assert is_transient_error(self._http_error(503))
        assert not is_transient_error(self._http_error(404))

    @pytest.mark.parametrize("status,expected", [
        (408, True), (429, True), (500, True), (504, True),
        (200, False), (400, False), (401, False), (404, False),
    ])
    def test_status_codes(self, status, expected):
        assert should_retry_http_status(status) is expected
