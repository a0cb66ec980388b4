"""
JSON Web Signature construction for ACME requests (RFC 7515, RFC 8555 6.2).

Signing is done by `acme.jws.JWS`; only ES256 (ECDSA P-256 with SHA-256) is
produced, with the raw ``r || s`` signature josepy emits for it.
"""
import json

import attr
import josepy as jose
from acme.jws import JWS

from txbac.codec import base64url_encode
from txbac.errors import NoNonceAvailable
from txbac.logging import LOG_JWS_SIGN

ES256 = jose.ES256


@attr.s
class ProtectedHeader(object):
    """
    The per-request parts of a JWS protected header.

    The header owns the nonce slot for its request chain: the slot is cleared
    once a nonce has been signed into a body, and refilled before the next
    signature.  Do not share a header between concurrent requests.

    :ivar str url: The request URL.
    :ivar str nonce: The nonce to sign with next, or ``None``.
    :ivar str kid: The account URL.  Without one, the public key is embedded
        as ``jwk`` instead, which is only accepted for account creation.
    """
    url = attr.ib()
    nonce = attr.ib(default=None)
    kid = attr.ib(default=None)


def sign(payload, header, private_key):
    """
    Sign ``payload`` into a flattened JWS.

    :param str payload: The payload text.  ``None`` or ``""`` means
        POST-as-GET, and the JWS ``payload`` member is the empty string.
    :param ProtectedHeader header: The header; its nonce must be set.
    :param private_key: An EC P-256 ``cryptography`` private key.

    :raises NoNonceAvailable: if ``header.nonce`` is not set.

    :rtype: `bytes`
    :return: The JSON-encoded JWS.
    """
    if header.nonce is None:
        raise NoNonceAvailable(header.url)
    with LOG_JWS_SIGN(alg=ES256.name, nonce=header.nonce, url=header.url,
                      kid=header.kid):
        return JWS.sign(
            payload=payload.encode('utf-8') if payload else b'',
            key=jose.JWKEC(key=private_key),
            alg=ES256,
            nonce=jose.decode_b64jose(header.nonce),
            url=header.url,
            kid=header.kid,
        ).json_dumps().encode('utf-8')


def sign_json(obj, header, private_key):
    """
    Sign the JSON serialization of ``obj``.

    ``{}`` is a real payload (it is how a challenge is answered), so it is not
    treated as POST-as-GET.
    """
    return sign(
        json.dumps(obj, separators=(',', ':')), header, private_key)


@attr.s(frozen=True)
class JsonWebKey(object):
    """
    :ivar dict key: The public JWK.
    :ivar str thumbprint: base64url SHA-256 JWK thumbprint (RFC 7638).
    """
    key = attr.ib()
    thumbprint = attr.ib()


def create_json_web_key(public_key):
    """
    Export an EC public key as a JWK and compute its thumbprint.

    :param public_key: An EC ``cryptography`` public key.

    :rtype: JsonWebKey
    """
    jwk = jose.JWKEC(key=public_key)
    return JsonWebKey(
        key=jwk.to_partial_json(),
        thumbprint=base64url_encode(jwk.thumbprint()))


def key_authorization(token, thumbprint):
    """
    The key authorization for a challenge token (RFC 8555 8.1).
    """
    return u'{}.{}'.format(token, thumbprint)


__all__ = [
    'ES256', 'ProtectedHeader', 'sign', 'sign_json', 'JsonWebKey',
    'create_json_web_key', 'key_authorization']
