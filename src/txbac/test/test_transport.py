"""
Tests for `txbac.transport`.
"""
import json

from eliot.testing import assertHasAction, capture_logging
from treq.testing import StubTreq
from twisted.internet import defer
from twisted.internet.task import Clock
from twisted.trial.unittest import TestCase
from twisted.web.resource import Resource
from zope.interface.verify import verifyObject

from txbac.client import JOSE_CONTENT_TYPE
from txbac.interfaces import IHTTPTransport
from txbac.logging import LOG_HTTP_REQUEST
from txbac.nonce import replay_nonce
from txbac.transport import HTTPTransport

URL = u'https://acme.test/new-order'


class RecordingResource(Resource):
    """
    Answers every request with a JSON body and a nonce, keeping the requests
    it saw.
    """
    isLeaf = True

    def __init__(self, code=201):
        Resource.__init__(self)
        self.code = code
        self.requests = []

    def render(self, request):
        self.requests.append(
            (request.method, request.requestHeaders, request.content.read()))
        request.setResponseCode(self.code)
        request.setHeader(b'content-type', b'application/json')
        request.setHeader(b'replay-nonce', b'n1')
        return json.dumps({u'status': u'pending'}).encode('utf-8')


class HTTPTransportTests(TestCase):
    """
    `.HTTPTransport` makes single requests with treq.
    """
    def setUp(self):
        self.clock = Clock()
        self.resource = RecordingResource()
        self.transport = HTTPTransport(self.clock, StubTreq(self.resource))

    def test_interface(self):
        verifyObject(IHTTPTransport, self.transport)

    @defer.inlineCallbacks
    def test_post(self):
        """
        The body and headers are sent, and the response exposed as is.
        """
        response = yield self.transport.request(
            u'POST', URL, data=b'{}', content_type=JOSE_CONTENT_TYPE,
            accept=b'application/json')
        self.assertEqual(201, response.code)
        self.assertEqual(u'n1', replay_nonce(response))
        body = yield response.json()
        self.assertEqual({u'status': u'pending'}, body)

        [(method, headers, data)] = self.resource.requests
        self.assertEqual(b'POST', method)
        self.assertEqual(b'{}', data)
        self.assertEqual(
            [JOSE_CONTENT_TYPE], headers.getRawHeaders(b'content-type'))
        self.assertEqual(
            [b'application/json'], headers.getRawHeaders(b'accept'))
        self.assertTrue(
            headers.getRawHeaders(b'user-agent')[0].startswith(b'txbac/'))

    @defer.inlineCallbacks
    def test_timeout_on_clock(self):
        """
        The response timeout is scheduled on the transport's clock and
        cancelled once the response arrives.
        """
        yield self.transport.request(u'HEAD', URL)
        self.assertEqual([], self.clock.getDelayedCalls())

    @capture_logging(None)
    def test_logged(self, logger):
        self.transport.request(u'GET', URL)
        assertHasAction(
            self, logger, LOG_HTTP_REQUEST, True,
            {u'method': u'GET', u'url': URL},
            {u'code': 201, u'content_type': u'application/json'})

    def test_stop_without_pool(self):
        self.assertIsNone(self.successResultOf(self.transport.stop()))
