"""
Replay-nonce management.

There is no nonce pool: the single nonce slot of a request chain lives on its
`~txbac.jws.ProtectedHeader`, and the helpers here only fill it.  A nonce
comes either from the ``Replay-Nonce`` header of the previous response or from
a ``HEAD`` to the directory's ``newNonce`` URL.
"""
from eliot.twisted import DeferredContext
from twisted.internet import defer

from txbac.errors import NoNonceAvailable
from txbac.logging import LOG_NONCE_ACQUIRE
from txbac.retry import PLAIN_RETRY, is_ok, retry_until_ok
from txbac.util import tap

REPLAY_NONCE_HEADER = b'Replay-Nonce'


def replay_nonce(response):
    """
    The ``Replay-Nonce`` header of ``response``.

    :rtype: str or ``None``
    """
    if response is None:
        return None
    nonce = response.headers.getRawHeaders(REPLAY_NONCE_HEADER, [None])[0]
    if nonce is None:
        return None
    if isinstance(nonce, bytes):
        nonce = nonce.decode('ascii')
    return nonce


def request_nonce(transport, url, policy=PLAIN_RETRY):
    """
    ``HEAD`` the nonce endpoint, with retries.

    :return: ``Deferred`` firing with the response, or ``None`` if no attempt
        got one.
    """
    return retry_until_ok(transport, u'HEAD', url, policy)


def _nonce_url(directory):
    try:
        return directory[u'newNonce']
    except KeyError:
        return None


def acquire_nonce(transport, directory, nonce=None, policy=PLAIN_RETRY):
    """
    Get a nonce for the next signed request.

    :param directory: The `acme.messages.Directory`.
    :param str nonce: A nonce already on hand, returned as is.

    :raises NoNonceAvailable: Through the Deferred, when the nonce endpoint
        does not produce one.

    :rtype: Deferred[str]
    """
    if nonce is not None:
        return defer.succeed(nonce)

    url = _nonce_url(directory)
    if url is None:
        return defer.fail(NoNonceAvailable(url))

    def _extract(response):
        fresh = None
        if response is not None and is_ok(response):
            fresh = replay_nonce(response)
        if fresh is None:
            raise NoNonceAvailable(url)
        return fresh

    action = LOG_NONCE_ACQUIRE(url=url)
    with action.context():
        return (
            DeferredContext(request_nonce(transport, url, policy))
            .addCallback(_extract)
            .addCallback(tap(
                lambda fresh: action.add_success_fields(nonce=fresh)))
            .addActionFinish())


def next_nonce(transport, response, directory):
    """
    The nonce to offer to the call after ``response``.

    The response's own ``Replay-Nonce`` is used when present, saving a round
    trip; otherwise one is fetched.

    :rtype: Deferred[str or ``None``]
    """
    def _none_available(failure):
        failure.trap(NoNonceAvailable)
        return None

    d = acquire_nonce(transport, directory, replay_nonce(response))
    d.addErrback(_none_available)
    return d


__all__ = [
    'REPLAY_NONCE_HEADER', 'replay_nonce', 'request_nonce', 'acquire_nonce',
    'next_nonce']
