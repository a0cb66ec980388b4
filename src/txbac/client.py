"""
ACME operations for Twisted.

Extracted from RFC 8555

                              directory
                                  |
                                  +--> newNonce
                                  |
      +----------+----------+-----+-----+------------+
      |          |          |           |            |
      |          |          |           |            |
      V          V          V           V            V
 newAccount   newAuthz   newOrder   revokeCert   keyChange
      |          |          |
      |          |          |
      V          |          V
   account       |        order --+--> finalize
                 |          |     |
                 |          |     +--> cert
                 |          V
                 +---> authorization
                           | ^
                           | | "up"
                           V |
                         challenge

                 ACME Resources and Relationships

A typical issuance with the operations of this module:

1. new_directory(transport, url)
2. new_nonce(transport, directory['newNonce'])
3. create_account(...) - ``location`` of the result is the ``kid``
4. create_order(...)
5. post_as_get(...) for each authorization URL of the order
6. post_as_get_challenge(...) to tell the server a challenge is ready
7. post_as_get(...) on the order until it is ``ready``
8. finalize_order(...)
9. post_as_get(...) on the order until it is ``valid``
10. fetch_certificate(...) on the order's certificate URL

Nothing enforces this order; the server rejects steps that are out of place
(finalizing an order that is not ``ready`` yields ``orderNotReady``).

Every operation fires with a `~txbac.messages.Success` or a
`~txbac.messages.Failed` and never errbacks.  Each one takes the nonce to
sign with; the nonce of the result is the one to pass to the next call.
`Client` does that bookkeeping for one issuance flow.
"""
from functools import wraps

import attr
import pem
from acme import messages
from eliot.twisted import DeferredContext
from twisted.internet import defer
from twisted.internet.task import deferLater
from twisted.logger import Logger
from twisted.python.failure import Failure

from txbac.codec import base64url_encode, hex_to_bytes
from txbac.errors import (
    MalformedResponse, NoNonceAvailable, OperationFailed)
from txbac.jws import (
    JsonWebKey, ProtectedHeader, create_json_web_key, sign, sign_json)
from txbac.logging import (
    LOG_ACME_CONSUME_DIRECTORY, LOG_ACME_OPERATION, LOG_RETRY_ATTEMPT_FAILED,
    LOG_RETRY_EXHAUSTED, LOG_RETRY_NO_NONCE)
from txbac.messages import Failed, Problem, Success
from txbac.nonce import acquire_nonce, next_nonce, replay_nonce, request_nonce
from txbac.retry import (
    PLAIN_RETRY, POLL_RETRY, PROTECTED_RETRY, RENEWAL_INFO_RETRY, backoff,
    discard, is_ok, log_attempt_error, retry_until_ok)
from txbac.util import directory_url_text, make_csr, tap


log = Logger()

JSON_CONTENT_TYPE = b'application/json'
JOSE_CONTENT_TYPE = b'application/jose+json'
PEM_CHAIN_TYPE = b'application/pem-certificate-chain'
LOCATION_HEADER = b'Location'


def fqdn_identifier(fqdn):
    """
    Construct an identifier from an FQDN.

    Trivial implementation, just saves on typing.

    :param str fqdn: The domain name.

    :return: The identifier.
    :rtype: `~acme.messages.Identifier`
    """
    return messages.Identifier(
        typ=messages.IDENTIFIER_FQDN, value=fqdn)


def _identifier_json(identifier):
    if isinstance(identifier, str):
        return fqdn_identifier(identifier).to_json()
    if isinstance(identifier, messages.Identifier):
        return identifier.to_json()
    return identifier


def _location(response):
    """
    Get the Location: if there is one.
    """
    location = response.headers.getRawHeaders(LOCATION_HEADER, [None])[0]
    if isinstance(location, bytes):
        return location.decode('ascii')
    return location


def _outcome(result):
    if result.ok:
        return u'success'
    return result.error.type


def _exception_envelope(name, failure):
    """
    Wrap a local failure, keeping the nonce of an undecodable response.
    """
    if failure.check(MalformedResponse):
        return Failed(
            Problem.from_failure(name, failure),
            location=failure.value.location,
            nonce=failure.value.nonce)
    return Failed(Problem.from_failure(name, failure))


def _operation(name):
    """
    Turn a function firing with an envelope, or with ``None`` once retries
    are exhausted, into an ACME operation that always fires with an envelope.

    :param str name: The operation name used in local problem types.
    """
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            def exhausted(result):
                if result is None:
                    return Failed(Problem.failed(name))
                return result

            action = LOG_ACME_OPERATION(operation=name)
            with action.context():
                return (
                    DeferredContext(defer.maybeDeferred(f, *args, **kwargs))
                    .addCallback(exhausted)
                    .addErrback(lambda f: _exception_envelope(name, f))
                    .addCallback(tap(
                        lambda r: action.add_success_fields(
                            outcome=_outcome(r))))
                    .addActionFinish())
        return wrapper
    return decorator


@defer.inlineCallbacks
def _read_json(response, nonce=None, location=None):
    """
    Decode a JSON body, failing with `MalformedResponse` when it is not JSON.
    """
    try:
        body = yield response.json()
    except ValueError as e:
        raise MalformedResponse(
            code=response.code, reason=str(e), nonce=nonce,
            location=location)
    return body


@defer.inlineCallbacks
def answer(transport, response, directory):
    """
    Normalize a response into an envelope.

    The nonce for the next call is taken from ``Replay-Nonce`` or fetched,
    the ``Location`` header kept, and the body parsed as JSON.  A body that
    is not JSON gives a `MalformedResponse` carrying that nonce.
    """
    location = _location(response)
    nonce = yield next_nonce(transport, response, directory)
    body = yield _read_json(response, nonce, location)
    if is_ok(response):
        return Success(data=body, location=location, nonce=nonce)
    return Failed(
        error=Problem.from_json(body, response.code),
        location=location,
        nonce=nonce)


def _sign_payload(payload, header, private_key):
    if payload is None or isinstance(payload, str):
        return sign(payload, header, private_key)
    return sign_json(payload, header, private_key)


@defer.inlineCallbacks
def retry_protected_until_ok(transport, payload, header, private_key,
                             directory, policy=PROTECTED_RETRY,
                             nonce_policy=PLAIN_RETRY, accept=None):
    """
    POST a signed payload until a 2xx response arrives or attempts run out.

    Every attempt signs afresh.  A nonce is spent as soon as it is signed
    into a body, so ``header.nonce`` is cleared then, and an attempt after a
    failed one fetches a new nonce from the nonce endpoint.  Failing to get a
    nonce, or a transport error, costs that attempt and its backoff only.

    :param payload: ``None`` for POST-as-GET, text, or a JSON-serializable
        object.
    :param ~txbac.jws.ProtectedHeader header: The header; its ``nonce`` is
        used for the first attempt when set.
    :param private_key: The account key.
    :param directory: The `acme.messages.Directory`, for ``newNonce``.
    :param ~txbac.retry.RetryPolicy policy: Attempts and backoff of the POST.
    :param ~txbac.retry.RetryPolicy nonce_policy: Retry policy of each nonce
        fetch.
    :param bytes accept: ``Accept`` header for the POST.

    :return: ``Deferred`` firing with the first 2xx response, else the
        response to the final attempt, else ``None``.
    """
    for attempt in range(1, policy.attempts + 1):
        last = attempt == policy.attempts
        response = None
        try:
            header.nonce = yield acquire_nonce(
                transport, directory, header.nonce, nonce_policy)
        except NoNonceAvailable:
            LOG_RETRY_NO_NONCE(attempt=attempt, url=header.url).write()
        else:
            body = _sign_payload(payload, header, private_key)
            header.nonce = None
            try:
                response = yield transport.request(
                    u'POST', header.url, data=body,
                    content_type=JOSE_CONTENT_TYPE, accept=accept)
            except Exception:
                log_attempt_error(attempt, header.url, Failure())

        if response is not None:
            if is_ok(response) or last:
                return response
            if not policy.quiet:
                LOG_RETRY_ATTEMPT_FAILED(
                    attempt=attempt, url=header.url, code=response.code
                ).write()
            yield discard(response)
        if not last:
            yield backoff(transport.clock, policy, attempt)
    LOG_RETRY_EXHAUSTED(attempts=policy.attempts, url=header.url).write()
    return None


@defer.inlineCallbacks
def _signed(transport, payload, header, private_key, directory, policy):
    response = yield retry_protected_until_ok(
        transport, payload, header, private_key, directory, policy)
    if response is None:
        return None
    result = yield answer(transport, response, directory)
    return result


@_operation(u'newDirectory')
@defer.inlineCallbacks
def new_directory(transport, url, policy=PLAIN_RETRY):
    """
    Fetch the ACME directory.

    :param url: The directory URL, text or ``twisted.python.url.URL``.  See
        `txbac.urls` for well-known directories.

    :return: ``Deferred`` firing with an envelope whose ``data`` is an
        `acme.messages.Directory`.
    """
    response = yield retry_until_ok(
        transport, u'GET', directory_url_text(url), policy)
    if response is None:
        return None
    body = yield response.json()
    if is_ok(response):
        return Success(data=messages.Directory.from_json(body))
    return Failed(error=Problem.from_json(body, response.code))


@_operation(u'newNonce')
@defer.inlineCallbacks
def new_nonce(transport, url, policy=PLAIN_RETRY):
    """
    Fetch a fresh nonce.

    :param str url: The directory's ``newNonce`` URL.

    :return: ``Deferred`` firing with an envelope; on success ``nonce`` is the
        new nonce and ``data`` is ``None``.
    """
    response = yield request_nonce(transport, url, policy)
    if response is None:
        return None
    if is_ok(response):
        return Success(data=None, nonce=replay_nonce(response))
    nonce = replay_nonce(response)
    body = yield _read_json(response, nonce)
    return Failed(error=Problem.from_json(body, response.code), nonce=nonce)


@_operation(u'createAccount')
def create_account(transport, nonce, private_key, json_web_key, directory,
                   email=None, policy=PROTECTED_RETRY):
    """
    Create an account, or find the existing one for the key.

    The request is signed with the raw public key, as no ``kid`` exists yet.

    :param str nonce: The nonce to sign with, or ``None`` to fetch one.
    :param private_key: The account key.
    :param json_web_key: The account's `~txbac.jws.JsonWebKey` or its JWK
        dict.
    :param str email: Comma separated contact emails, optional.

    :return: ``Deferred`` firing with an envelope whose ``location`` is the
        account URL (the ``kid`` for later calls).
    """
    if isinstance(json_web_key, JsonWebKey):
        json_web_key = json_web_key.key
    if json_web_key != create_json_web_key(private_key.public_key()).key:
        raise ValueError('The JWK is not the public half of the account key')
    payload = messages.Registration.from_data(
        email=email, terms_of_service_agreed=True).to_json()
    header = ProtectedHeader(url=directory[u'newAccount'], nonce=nonce)
    return _signed(transport, payload, header, private_key, directory, policy)


@_operation(u'createOrder')
def create_order(transport, kid, nonce, private_key, identifiers, directory,
                 policy=PROTECTED_RETRY):
    """
    Submit a new order.

    :param identifiers: Domain names, `acme.messages.Identifier` objects or
        identifier dicts.

    :return: ``Deferred`` firing with an envelope whose ``location`` is the
        order URL.
    """
    payload = {u'identifiers': [_identifier_json(i) for i in identifiers]}
    header = ProtectedHeader(url=directory[u'newOrder'], nonce=nonce, kid=kid)
    return _signed(transport, payload, header, private_key, directory, policy)


@_operation(u'finalizeOrder')
def finalize_order(transport, common_name, kid, nonce, private_key, csr_key,
                   finalize_url, dns_names, directory, make_csr=make_csr,
                   policy=PROTECTED_RETRY):
    """
    Finalize an order by submitting a CSR.

    :param str common_name: The CSR common name.
    :param csr_key: The certificate's private key; the CSR certifies its
        public half.
    :param str finalize_url: The order's ``finalize`` URL.
    :param dns_names: Further names for the certificate.
    :param make_csr: ``(common_name, csr_key, dns_names) -> str`` returning
        the base64url DER CSR.
    """
    payload = {u'csr': make_csr(common_name, csr_key, dns_names)}
    header = ProtectedHeader(url=finalize_url, nonce=nonce, kid=kid)
    return _signed(transport, payload, header, private_key, directory, policy)


@_operation(u'postAsGet')
def post_as_get(transport, kid, nonce, private_key, url, directory,
                policy=POLL_RETRY):
    """
    Read an order or authorization with POST-as-GET (empty payload).
    """
    header = ProtectedHeader(url=url, nonce=nonce, kid=kid)
    return _signed(transport, None, header, private_key, directory, policy)


@_operation(u'postAsGetChal')
def post_as_get_challenge(transport, kid, nonce, private_key, url, directory,
                          policy=POLL_RETRY):
    """
    POST ``{}`` to a challenge URL.

    This tells the server the challenge is ready to be validated and returns
    its current state.
    """
    header = ProtectedHeader(url=url, nonce=nonce, kid=kid)
    return _signed(transport, {}, header, private_key, directory, policy)


@_operation(u'fetchCertificate')
@defer.inlineCallbacks
def fetch_certificate(transport, kid, nonce, private_key, url, directory,
                      policy=PROTECTED_RETRY):
    """
    Download an issued certificate chain.

    :return: ``Deferred`` firing with an envelope whose ``data`` is the list
        of ``pem`` objects of the chain, leaf first.
    """
    header = ProtectedHeader(url=url, nonce=nonce, kid=kid)
    response = yield retry_protected_until_ok(
        transport, None, header, private_key, directory, policy,
        accept=PEM_CHAIN_TYPE)
    if response is None:
        return None
    if not is_ok(response):
        result = yield answer(transport, response, directory)
        return result
    body = yield response.content()
    nonce = yield next_nonce(transport, response, directory)
    return Success(
        data=pem.parse(body), location=_location(response), nonce=nonce)


def renewal_info_url(base, aki, serial):
    """
    The renewal-info URL of a certificate.

    :param str base: The directory's ``renewalInfo`` URL.
    :param str aki: The authority key identifier, as hex.
    :param str serial: The serial number, as hex.

    :raises txbac.errors.InvalidInput: If ``aki`` or ``serial`` is not hex.
    """
    if base is None:
        raise ValueError('Directory has no renewalInfo URL')
    return u'{}/{}.{}'.format(
        base.rstrip(u'/'),
        base64url_encode(hex_to_bytes(aki)),
        base64url_encode(hex_to_bytes(serial)))


@_operation(u'fetchSuggestedWindow')
@defer.inlineCallbacks
def fetch_suggested_window(transport, renewal_info, aki, serial,
                           policy=RENEWAL_INFO_RETRY):
    """
    Fetch the suggested renewal window of a certificate (unauthenticated).

    :param str renewal_info: The directory's ``renewalInfo`` URL.

    :return: ``Deferred`` firing with an envelope whose ``data`` is the
        renewal info, e.g. ``{"suggestedWindow": {"start": ..., "end": ...}}``.
    """
    url = renewal_info_url(renewal_info, aki, serial)
    response = yield retry_until_ok(transport, u'GET', url, policy)
    if response is None:
        return None
    body = yield _read_json(response)
    if is_ok(response):
        return Success(data=body)
    return Failed(error=Problem.from_json(body, response.code))


@attr.s(eq=False)
class Client(object):
    """
    One ACME issuance flow.

    The client remembers the nonce handed back by each operation and the
    account URL once registered, so callers do not have to thread them
    through.  Because of the nonce, a client must not run two operations at
    once; use one client per concurrent flow.  The directory, key and
    transport may be shared.

    Construct one directly when the directory is at hand, or with
    `Client.from_url` to fetch it first.

    :ivar transport: The `~txbac.interfaces.IHTTPTransport`.
    :ivar key: The account private key (EC P-256).
    :ivar directory: The `acme.messages.Directory`.
    :ivar str kid: The account URL, once known.
    :ivar str nonce: The nonce for the next request, if one is on hand.
    """
    transport = attr.ib()
    key = attr.ib()
    directory = attr.ib()
    kid = attr.ib(default=None)
    nonce = attr.ib(default=None)
    jwk = attr.ib(init=False)

    def __attrs_post_init__(self):
        self.jwk = create_json_web_key(self.key.public_key())

    @classmethod
    def from_url(cls, transport, url, key, policy=PLAIN_RETRY):
        """
        Construct a client from an ACME directory at a given URL.

        :param transport: The `~txbac.interfaces.IHTTPTransport`.
        :param url: The directory URL, text or ``twisted.python.url.URL``.
        :param key: The account private key.

        :raises OperationFailed: Through the Deferred, with the `Failed`
            envelope, when the directory cannot be fetched.

        :rtype: Deferred[`Client`]
        """
        def got_directory(result):
            if not result.ok:
                raise OperationFailed(result)
            return cls(transport, key, result.data)

        action = LOG_ACME_CONSUME_DIRECTORY(url=directory_url_text(url))
        with action.context():
            return (
                DeferredContext(new_directory(transport, url, policy))
                .addCallback(got_directory)
                .addActionFinish())

    def _take_nonce(self):
        nonce, self.nonce = self.nonce, None
        return nonce

    def _keep_nonce(self, result):
        self.nonce = result.nonce
        return result

    def _directory_url(self, name):
        try:
            return self.directory[name]
        except KeyError:
            return None

    def register(self, email=None):
        """
        Create a new account, or find the existing one for this key.

        :param str email: Comma separated contact emails used by the account.

        :rtype: Deferred[`~txbac.messages.Success` or
            `~txbac.messages.Failed`]
        """
        def got_account(result):
            if result.ok:
                self.kid = result.location
                log.info('Using ACME account {kid}.', kid=self.kid)
            return result

        return (
            create_account(
                self.transport, self._take_nonce(), self.key, self.jwk,
                self.directory, email=email)
            .addCallback(self._keep_nonce)
            .addCallback(got_account))

    def submit_order(self, identifiers):
        """
        Create a new order.

        :param identifiers: Domain names or identifiers.
        """
        def got_order(result):
            if result.ok:
                log.info(
                    'Order {order} created for {identifiers!r}.',
                    order=result.location, identifiers=identifiers)
            return result

        return (
            create_order(
                self.transport, self.kid, self._take_nonce(), self.key,
                identifiers, self.directory)
            .addCallback(self._keep_nonce)
            .addCallback(got_order))

    def check(self, url):
        """
        POST-as-GET an order or authorization.
        """
        return (
            post_as_get(
                self.transport, self.kid, self._take_nonce(), self.key, url,
                self.directory)
            .addCallback(self._keep_nonce))

    def poll_challenge(self, url):
        """
        Signal that a challenge is ready, returning its state.
        """
        return (
            post_as_get_challenge(
                self.transport, self.kid, self._take_nonce(), self.key, url,
                self.directory)
            .addCallback(self._keep_nonce))

    def finalize(self, finalize_url, csr_key, names):
        """
        Finalize an order.

        :param str finalize_url: The order's ``finalize`` URL.
        :param csr_key: The certificate's private key.
        :param names: The names of the certificate; the first one is the
            common name.
        """
        return (
            finalize_order(
                self.transport, names[0], self.kid, self._take_nonce(),
                self.key, csr_key, finalize_url, names[1:], self.directory)
            .addCallback(self._keep_nonce))

    def fetch_certificate(self, url):
        """
        Download the certificate chain at ``url``.
        """
        return (
            fetch_certificate(
                self.transport, self.kid, self._take_nonce(), self.key, url,
                self.directory)
            .addCallback(self._keep_nonce))

    def suggested_window(self, aki, serial):
        """
        Fetch the renewal info of a certificate.

        ..  seealso:: `txbac.util.certificate_identifier`
        """
        return fetch_suggested_window(
            self.transport, self._directory_url(u'renewalInfo'), aki, serial)

    @defer.inlineCallbacks
    def poll_until(self, url, statuses=(u'valid', u'invalid'),
                   timeout=300.0):
        """
        POST-as-GET ``url`` until its ``status`` is one of ``statuses``.

        Polling sleeps 0.5 seconds, doubling after each poll.

        :param float timeout: Maximum time to poll in seconds, before giving
            up.

        :return: ``Deferred`` firing with the last envelope: a `Failed` one,
            one in a wanted status, or whatever was current at the timeout.
        """
        clock = self.transport.clock
        now = clock.seconds()
        sleep = 0.5
        while True:
            result = yield self.check(url)
            if not result.ok or result.data.get(u'status') in statuses:
                return result
            if clock.seconds() - now > timeout:
                return result
            yield deferLater(clock, sleep, lambda: None)
            sleep += sleep

    def stop(self):
        """
        Stops the client operation.

        :return: When operation is done.
        :rtype: Deferred[None]
        """
        return self.transport.stop()


__all__ = [
    'Client', 'JSON_CONTENT_TYPE', 'JOSE_CONTENT_TYPE', 'PEM_CHAIN_TYPE',
    'fqdn_identifier', 'answer', 'retry_protected_until_ok', 'new_directory',
    'new_nonce', 'create_account', 'create_order', 'finalize_order',
    'post_as_get', 'post_as_get_challenge', 'fetch_certificate',
    'renewal_info_url', 'fetch_suggested_window']
