"""
Issue a certificate with txbac, answering the http-01 challenge from a local
web server.

The ACME server must be able to reach port 5002 of this host for the
requested domain; a local pebble server started with
``PEBBLE_VA_ALWAYS_VALID=1`` skips that check.

The Eliot log is written to eliot-log.json; read it with ``eliot-tree``.
"""
import sys

from eliot import to_file
from twisted.internet import defer, reactor
from twisted.internet.endpoints import TCP4ServerEndpoint
from twisted.web import http
from twisted.web.resource import Resource
from twisted.web.server import Site

from txbac.client import Client
from txbac.jws import key_authorization
from txbac.transport import HTTPTransport
from txbac.util import generate_private_key, private_key_pem

LOG_PATH = 'eliot-log.json'


class StaticTextResource(Resource, object):
    """
    A resource returning the same text for every path.
    """
    isLeaf = True

    def __init__(self, content=u'', code=http.OK):
        self._content = content.encode('utf-8')
        self._code = code
        super(StaticTextResource, self).__init__()

    def render(self, request):
        request.setHeader(b'Content-Type', b'text/plain')
        request.setResponseCode(self._code)
        return self._content


def start_http01_server(tokens):
    """
    Serve ``/.well-known/acme-challenge/<token>`` from the ``tokens`` dict.
    """
    challenges = Resource()
    challenges.getChild = lambda name, request: StaticTextResource(
        tokens.get(name.decode('ascii'), u''))
    well_known = Resource()
    well_known.putChild(b'acme-challenge', challenges)
    root = Resource()
    root.putChild(b'.well-known', well_known)
    endpoint = TCP4ServerEndpoint(reactor, 5002)
    return endpoint.listen(Site(root))


def check(result, what):
    if not result.ok:
        raise RuntimeError('{} failed: {!r}'.format(what, result.error))
    print('{}: ok'.format(what))
    return result


@defer.inlineCallbacks
def issue(acme_url, domain):
    tokens = {}
    yield start_http01_server(tokens)

    transport = HTTPTransport.from_reactor(reactor)
    client = yield Client.from_url(
        transport, acme_url, generate_private_key(u'ec'))
    try:
        check((yield client.register(u'admin@' + domain)), 'register')
        order = check(
            (yield client.submit_order([domain])), 'new order')

        for authz_url in order.data[u'authorizations']:
            authz = check((yield client.check(authz_url)), 'authorization')
            [challenge] = [
                c for c in authz.data[u'challenges']
                if c[u'type'] == u'http-01']
            tokens[challenge[u'token']] = key_authorization(
                challenge[u'token'], client.jwk.thumbprint)
            check(
                (yield client.poll_challenge(challenge[u'url'])),
                'challenge ready')

        ready = check(
            (yield client.poll_until(
                order.location, statuses=(u'ready', u'invalid'))),
            'order ready')
        csr_key = generate_private_key(u'rsa')
        check(
            (yield client.finalize(
                ready.data[u'finalize'], csr_key, [domain])),
            'finalize')
        valid = check(
            (yield client.poll_until(order.location)), 'order valid')
        chain = check(
            (yield client.fetch_certificate(valid.data[u'certificate'])),
            'certificate')

        sys.stdout.write(private_key_pem(csr_key).decode('ascii'))
        for certificate in chain.data:
            sys.stdout.write(str(certificate))
    finally:
        yield client.stop()


if len(sys.argv) < 3:
    print('Usage: %s API_ENDPOINT REQUESTED_DOMAIN\n' % (sys.argv[0],))
    print('ACME v2 endpoints:')
    print('[Production] https://acme-v02.api.letsencrypt.org/directory')
    print('[Staging] https://acme-staging-v02.api.letsencrypt.org/directory')
    print('[Pebble] https://localhost:14000/dir')
    sys.exit(1)

to_file(open(LOG_PATH, 'w'))

d = issue(sys.argv[1], sys.argv[2])
d.addErrback(lambda failure: print(failure.getTraceback()))
d.addBoth(lambda _: reactor.stop())

reactor.run()
