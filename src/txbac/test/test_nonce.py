"""
Tests for `txbac.nonce`.
"""
from acme import messages
from twisted.internet.error import ConnectionRefusedError
from twisted.trial.unittest import TestCase

from txbac.errors import NoNonceAvailable
from txbac.nonce import acquire_nonce, next_nonce, replay_nonce
from txbac.retry import RetryPolicy
from txbac.testing import FakeResponse, FakeTransport, fake_directory

DIRECTORY = fake_directory()
NONCE_URL = DIRECTORY[u'newNonce']


class ReplayNonceTests(TestCase):
    def test_present(self):
        self.assertEqual(u'abc', replay_nonce(FakeResponse(nonce=u'abc')))

    def test_absent(self):
        self.assertIsNone(replay_nonce(FakeResponse()))
        self.assertIsNone(replay_nonce(None))


class AcquireNonceTests(TestCase):
    """
    `.acquire_nonce` hands out a nonce on hand or fetches one.
    """
    def setUp(self):
        self.transport = FakeTransport()

    def test_on_hand(self):
        """
        A given nonce is returned without any request.
        """
        d = acquire_nonce(self.transport, DIRECTORY, u'given')
        self.assertEqual(u'given', self.successResultOf(d))
        self.assertEqual([], self.transport.requests)

    def test_head(self):
        """
        Otherwise the nonce endpoint is sent a ``HEAD``.
        """
        self.transport.add(
            u'HEAD', NONCE_URL, FakeResponse(code=200, nonce=u'fresh'))
        d = acquire_nonce(self.transport, DIRECTORY)
        self.assertEqual(u'fresh', self.successResultOf(d))
        [request] = self.transport.requests
        self.assertEqual((u'HEAD', NONCE_URL), (request.method, request.url))

    def test_head_retried(self):
        """
        The ``HEAD`` is retried after a transport error.
        """
        self.transport.add(
            u'HEAD', NONCE_URL,
            ConnectionRefusedError(), FakeResponse(code=200, nonce=u'fresh'))
        d = acquire_nonce(self.transport, DIRECTORY)
        self.assertNoResult(d)
        self.transport.clock.advance(1.3)
        self.assertEqual(u'fresh', self.successResultOf(d))

    def test_no_header(self):
        """
        A response without ``Replay-Nonce`` is no nonce.
        """
        self.transport.add(u'HEAD', NONCE_URL, FakeResponse(code=200))
        d = acquire_nonce(self.transport, DIRECTORY)
        self.failureResultOf(d, NoNonceAvailable)

    def test_exhausted(self):
        """
        When no attempt gets a response, `NoNonceAvailable` is raised.
        """
        self.transport.add(
            u'HEAD', NONCE_URL, ConnectionRefusedError(),
            ConnectionRefusedError())
        d = acquire_nonce(
            self.transport, DIRECTORY, policy=RetryPolicy(2, 0.65))
        self.transport.clock.advance(1.3)
        f = self.failureResultOf(d, NoNonceAvailable)
        self.assertEqual(NONCE_URL, f.value.url)

    def test_error_response(self):
        """
        A non-2xx response is no nonce, even with a ``Replay-Nonce``.
        """
        self.transport.add(
            u'HEAD', NONCE_URL, FakeResponse(code=500, nonce=u'x'))
        d = acquire_nonce(
            self.transport, DIRECTORY, policy=RetryPolicy(1, 0.65))
        self.failureResultOf(d, NoNonceAvailable)

    def test_no_endpoint(self):
        """
        A directory without ``newNonce`` cannot provide nonces.
        """
        directory = messages.Directory.from_json(
            {u'newAccount': u'https://acme.test/new-account'})
        d = acquire_nonce(self.transport, directory)
        self.failureResultOf(d, NoNonceAvailable)


class NextNonceTests(TestCase):
    """
    `.next_nonce` prefers the response's own nonce.
    """
    def test_from_response(self):
        transport = FakeTransport()
        d = next_nonce(transport, FakeResponse(nonce=u'carried'), DIRECTORY)
        self.assertEqual(u'carried', self.successResultOf(d))
        self.assertEqual([], transport.requests)

    def test_fetched(self):
        transport = FakeTransport().add(
            u'HEAD', NONCE_URL, FakeResponse(code=200, nonce=u'fetched'))
        d = next_nonce(transport, FakeResponse(), DIRECTORY)
        self.assertEqual(u'fetched', self.successResultOf(d))

    def test_none(self):
        """
        Failing to get a nonce is not an error here.
        """
        transport = FakeTransport()
        d = next_nonce(transport, FakeResponse(), fake_directory())
        for _ in range(6):
            transport.clock.advance(10)
        self.assertIsNone(self.successResultOf(d))
