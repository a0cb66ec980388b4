"""
Utilities for testing with txbac.
"""
import json
from collections import deque

import attr
from acme import messages
from twisted.internet.defer import Deferred, fail, succeed
from twisted.internet.task import Clock
from twisted.web import http
from twisted.web.http_headers import Headers
from zope.interface import implementer

from txbac.client import JSON_CONTENT_TYPE
from txbac.interfaces import IHTTPTransport


def fake_directory(base=u'https://acme.test'):
    """
    A directory with every endpoint under ``base``.

    :rtype: `acme.messages.Directory`
    """
    return messages.Directory.from_json({
        u'newNonce': base + u'/new-nonce',
        u'newAccount': base + u'/new-account',
        u'newOrder': base + u'/new-order',
        u'revokeCert': base + u'/revoke-cert',
        u'keyChange': base + u'/key-change',
        u'renewalInfo': base + u'/renewal-info',
        })


@attr.s
class FakeResponse(object):
    """
    A canned response.

    :ivar int code: The status code.
    :ivar body: Decoded JSON, or ``bytes`` for a raw body.
    :ivar str nonce: Sent as ``Replay-Nonce`` when set.
    :ivar str location: Sent as ``Location`` when set.
    """
    code = attr.ib(default=http.OK)
    body = attr.ib(default=attr.Factory(dict))
    nonce = attr.ib(default=None)
    location = attr.ib(default=None)
    content_type = attr.ib(default=JSON_CONTENT_TYPE)
    consumed = attr.ib(default=False, init=False)

    @property
    def headers(self):
        h = Headers({b'content-type': [self.content_type]})
        if self.nonce is not None:
            h.setRawHeaders(b'replay-nonce', [self.nonce.encode('ascii')])
        if self.location is not None:
            h.setRawHeaders(b'location', [self.location.encode('ascii')])
        return h

    def content(self):
        self.consumed = True
        if isinstance(self.body, bytes):
            return succeed(self.body)
        return succeed(json.dumps(self.body).encode('utf-8'))

    def json(self):
        # Decoded afresh each time, like a real body.
        self.consumed = True
        body = self.body
        if not isinstance(body, bytes):
            body = json.dumps(body).encode('utf-8')
        try:
            return succeed(json.loads(body.decode('utf-8')))
        except ValueError:
            return fail()


@attr.s
class RecordedRequest(object):
    method = attr.ib()
    url = attr.ib()
    data = attr.ib()
    content_type = attr.ib()
    accept = attr.ib()

    def jws(self):
        """
        The request body decoded as a flattened JWS.
        """
        return json.loads(self.data.decode('utf-8'))


@implementer(IHTTPTransport)
@attr.s(eq=False)
class FakeTransport(object):
    """
    A transport replaying queued responses per method and URL.

    Queue entries may be a `FakeResponse`, an exception instance to fail the
    request with, or a ``Deferred`` to hand out as is.  A request with nothing
    queued fails.

    :ivar requests: Every `RecordedRequest`, in order.
    """
    clock = attr.ib(default=attr.Factory(Clock))
    requests = attr.ib(default=attr.Factory(list), init=False)
    stopped = attr.ib(default=False, init=False)
    _routes = attr.ib(default=attr.Factory(dict), init=False)

    def add(self, method, url, *responses):
        """
        Queue responses for ``method`` on ``url``.
        """
        self._routes.setdefault((method, url), deque()).extend(responses)
        return self

    def requests_to(self, method, url):
        return [r for r in self.requests
                if r.method == method and r.url == url]

    def request(self, method, url, data=None, content_type=None,
                accept=None):
        self.requests.append(
            RecordedRequest(method, url, data, content_type, accept))
        queue = self._routes.get((method, url))
        if not queue:
            return fail(AssertionError(
                'No response queued for {} {}'.format(method, url)))
        response = queue.popleft()
        if isinstance(response, Deferred):
            return response
        if isinstance(response, Exception):
            return fail(response)
        return succeed(response)

    def stop(self):
        self.stopped = True
        return succeed(None)


__all__ = ['FakeResponse', 'FakeTransport', 'RecordedRequest',
           'fake_directory']
