"""
Bounded retry with linearly increasing backoff.

Attempts never overlap: attempt ``n + 1`` starts only after the delay that
follows attempt ``n`` has elapsed.  The signed variant, which also has to
refresh the nonce between attempts, is
`txbac.client.retry_protected_until_ok`.
"""
import attr
from twisted.internet import defer
from twisted.internet.task import deferLater
from twisted.python.failure import Failure

from txbac.logging import (
    LOG_RETRY_ATTEMPT_ERROR, LOG_RETRY_ATTEMPT_FAILED, LOG_RETRY_EXHAUSTED)


@attr.s(frozen=True)
class RetryPolicy(object):
    """
    :ivar int attempts: Maximum number of attempts.
    :ivar float base_delay: Seconds; the wait after attempt ``n`` is
        ``base_delay * (n + 1)``.
    :ivar bool quiet: Do not log attempts that got a non-2xx response.
    """
    attempts = attr.ib()
    base_delay = attr.ib()
    quiet = attr.ib(default=False)

    @attempts.validator
    def _check_attempts(self, attribute, value):
        if value < 1:
            raise ValueError('At least one attempt is required')

    def delay(self, attempt):
        """
        Seconds to wait after failed attempt number ``attempt`` (1-based).
        """
        return self.base_delay * (attempt + 1)


PLAIN_RETRY = RetryPolicy(attempts=6, base_delay=0.65)
# A signed retry also pays for a fresh nonce, hence the larger base.
PROTECTED_RETRY = RetryPolicy(attempts=3, base_delay=2.25)
POLL_RETRY = RetryPolicy(attempts=3, base_delay=2.25, quiet=True)
RENEWAL_INFO_RETRY = RetryPolicy(attempts=2, base_delay=0.65, quiet=True)


def is_ok(response):
    """
    Whether ``response`` has a 2xx status.
    """
    return 200 <= response.code < 300


def backoff(clock, policy, attempt):
    """
    Wait out the delay following ``attempt``.

    :rtype: ``Deferred``
    """
    return deferLater(clock, policy.delay(attempt), lambda: None)


def discard(response):
    """
    Read and drop the body of a response that will not be used, so the
    connection can go back to the pool.
    """
    return response.content().addErrback(lambda f: None)


def log_attempt_error(attempt, url, failure):
    LOG_RETRY_ATTEMPT_ERROR(
        attempt=attempt, url=url, reason=failure.getErrorMessage()).write()


@defer.inlineCallbacks
def retry_until_ok(transport, method, url, policy=PLAIN_RETRY, **kwargs):
    """
    Request ``url`` until a 2xx response arrives or attempts run out.

    :param transport: The `~txbac.interfaces.IHTTPTransport`.
    :param str method: The HTTP method.
    :param str url: The URL.
    :param RetryPolicy policy: Attempts and backoff.
    :param kwargs: Passed to ``transport.request``.

    :return: ``Deferred`` firing with the first 2xx response, else the
        response to the final attempt, else ``None`` when the final attempt
        got no response.
    """
    for attempt in range(1, policy.attempts + 1):
        last = attempt == policy.attempts
        try:
            response = yield transport.request(method, url, **kwargs)
        except Exception:
            log_attempt_error(attempt, url, Failure())
        else:
            if is_ok(response) or last:
                return response
            if not policy.quiet:
                LOG_RETRY_ATTEMPT_FAILED(
                    attempt=attempt, url=url, code=response.code).write()
            yield discard(response)
        if not last:
            yield backoff(transport.clock, policy, attempt)
    LOG_RETRY_EXHAUSTED(attempts=policy.attempts, url=url).write()
    return None


__all__ = [
    'RetryPolicy', 'PLAIN_RETRY', 'PROTECTED_RETRY', 'POLL_RETRY',
    'RENEWAL_INFO_RETRY', 'is_ok', 'backoff', 'retry_until_ok']
