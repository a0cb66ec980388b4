"""
Tests for `txbac.messages`.
"""
from acme import messages
from twisted.python.failure import Failure
from twisted.trial.unittest import TestCase

from txbac.messages import (
    EXCEPTION_STATUS, EXHAUSTED_STATUS, ErrorKind, Failed, Problem, Success)


class ProblemTests(TestCase):
    """
    `.Problem` wraps server problem documents and local failures.
    """
    def test_from_json(self):
        problem = Problem.from_json({
            u'type': u'urn:ietf:params:acme:error:rateLimited',
            u'detail': u'too many certificates',
            u'status': 429}, 400)
        self.assertEqual(u'rateLimited', problem.code)
        self.assertEqual(429, problem.status)
        self.assertEqual(ErrorKind.PROTOCOL, problem.kind)

    def test_status_from_response(self):
        """
        Without a ``status`` member the HTTP code is used.
        """
        problem = Problem.from_json(
            {u'type': u'urn:acme:error:malformed'}, 400)
        self.assertEqual(400, problem.status)
        self.assertEqual(u'malformed', problem.code)

    def test_not_a_document(self):
        problem = Problem.from_json(u'Bad Gateway', 502)
        self.assertEqual(u'about:blank', problem.type)
        self.assertIsNone(problem.acme_error())

    def test_acme_error(self):
        """
        Protocol problems parse as `acme.messages.Error`.
        """
        problem = Problem.from_json({
            u'type': u'urn:ietf:params:acme:error:badNonce',
            u'detail': u'stale'}, 400)
        error = problem.acme_error()
        self.assertIsInstance(error, messages.Error)
        self.assertEqual(u'stale', error.detail)

    def test_failed(self):
        problem = Problem.failed(u'createOrder')
        self.assertEqual(u'bac:failed:createOrder', problem.type)
        self.assertEqual(EXHAUSTED_STATUS, problem.status)
        self.assertEqual(ErrorKind.EXHAUSTION, problem.kind)
        self.assertIsNone(problem.acme_error())

    def test_from_failure(self):
        problem = Problem.from_failure(
            u'postAsGet', Failure(ValueError(u'boom')))
        self.assertEqual(u'bac:exception:postAsGet', problem.type)
        self.assertEqual(EXCEPTION_STATUS, problem.status)
        self.assertEqual(u'boom', problem.detail)
        self.assertEqual(
            {u'type': u'bac:exception:postAsGet', u'detail': u'boom',
             u'status': EXCEPTION_STATUS},
            problem.to_json())


class EnvelopeTests(TestCase):
    def test_ok(self):
        self.assertTrue(Success(data={}).ok)
        self.assertFalse(Failed(error=Problem.failed(u'newNonce')).ok)

    def test_equality(self):
        self.assertEqual(
            Success(data={u'a': 1}, location=u'l', nonce=u'n'),
            Success(data={u'a': 1}, location=u'l', nonce=u'n'))
