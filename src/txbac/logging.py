"""
Eliot message and action definitions.
"""
from eliot import ActionType, Field, MessageType, fields

NONCE = Field.for_types(
    u'nonce',
    [str, None],
    u'A nonce value')

URL = Field.for_types(u'url', [str], u'The request URL')

ATTEMPT = Field.for_types(u'attempt', [int], u'The 1-based attempt number')

LOG_HTTP_REQUEST = ActionType(
    u'txbac:http:request',
    fields(URL, method=str),
    fields(Field.for_types(u'content_type',
                           [str, None],
                           u'Content-Type header field'),
           code=int),
    u'A transport request')

LOG_JWS_SIGN = ActionType(
    u'txbac:jws:sign',
    fields(NONCE, URL,
           Field.for_types(u'kid', [str, None], u'The account URL'),
           alg=str),
    fields(),
    u'Signing a message with JWS')

LOG_NONCE_ACQUIRE = ActionType(
    u'txbac:nonce:acquire',
    fields(URL),
    fields(NONCE),
    u'Fetching a nonce from the nonce endpoint')

LOG_RETRY_ATTEMPT_FAILED = MessageType(
    u'txbac:retry:attempt-failed',
    fields(ATTEMPT, URL, code=int),
    u'An attempt got a non-2xx response and will be retried')

LOG_RETRY_ATTEMPT_ERROR = MessageType(
    u'txbac:retry:attempt-error',
    fields(ATTEMPT, URL, reason=str),
    u'An attempt failed without a response')

LOG_RETRY_NO_NONCE = MessageType(
    u'txbac:retry:no-nonce',
    fields(ATTEMPT, URL),
    u'No nonce could be obtained so the attempt failed')

LOG_RETRY_EXHAUSTED = MessageType(
    u'txbac:retry:exhausted',
    fields(URL, attempts=int),
    u'All attempts failed without a response')

LOG_ACME_OPERATION = ActionType(
    u'txbac:acme:operation',
    fields(operation=str),
    fields(outcome=str),
    u'An ACME operation')

LOG_ACME_CONSUME_DIRECTORY = ActionType(
    u'txbac:acme:client:from-url',
    fields(URL),
    fields(),
    u'Creating an ACME client from a remote directory')
