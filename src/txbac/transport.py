"""
treq-based `~txbac.interfaces.IHTTPTransport`.
"""
import attr
from eliot.twisted import DeferredContext
from treq.client import HTTPClient
from twisted.internet import defer
from twisted.web.client import Agent, HTTPConnectionPool
from twisted.web.http_headers import Headers
from zope.interface import implementer

from txbac import __version__
from txbac.interfaces import IHTTPTransport
from txbac.logging import LOG_HTTP_REQUEST
from txbac.util import tap

_DEFAULT_TIMEOUT = 40
_USER_AGENT = u'txbac/{}'.format(__version__).encode('ascii')


@implementer(IHTTPTransport)
@attr.s(eq=False)
class HTTPTransport(object):
    """
    HTTP transport for ACME requests.

    :param clock: ``IReactorTime`` provider; usually the reactor.
    :param treq: A ``treq.client.HTTPClient`` (or ``treq.testing.StubTreq``).
    :param bytes user_agent: The ``User-Agent`` header value.
    :param int timeout: Seconds to wait for each response.
    """
    clock = attr.ib()
    _treq = attr.ib()
    user_agent = attr.ib(default=_USER_AGENT)
    timeout = attr.ib(default=_DEFAULT_TIMEOUT)
    _pool = attr.ib(default=None)

    @classmethod
    def from_reactor(cls, reactor, **kwargs):
        """
        Build a transport with its own persistent connection pool.
        """
        pool = HTTPConnectionPool(reactor)
        agent = Agent(reactor, pool=pool)
        return cls(reactor, HTTPClient(agent=agent), pool=pool, **kwargs)

    def request(self, method, url, data=None, content_type=None,
                accept=None):
        headers = Headers({b'user-agent': [self.user_agent]})
        if content_type is not None:
            headers.setRawHeaders(b'content-type', [content_type])
        if accept is not None:
            headers.setRawHeaders(b'accept', [accept])
        action = LOG_HTTP_REQUEST(method=method, url=url)
        with action.context():
            return (
                DeferredContext(
                    self._treq.request(
                        method, url, headers=headers, data=data,
                        timeout=self.timeout, reactor=self.clock))
                .addCallback(
                    tap(lambda r: action.add_success_fields(
                        code=r.code,
                        content_type=_content_type(r))))
                .addActionFinish())

    def stop(self):
        """
        Close cached connections.

        :return: A deferred which fires when the connections are closed.
        """
        if self._pool is not None:
            return self._pool.closeCachedConnections()
        return defer.succeed(None)


def _content_type(response):
    value = response.headers.getRawHeaders(b'content-type', [None])[0]
    if value is None:
        return None
    return value.decode('ascii', 'replace')


__all__ = ['HTTPTransport']
