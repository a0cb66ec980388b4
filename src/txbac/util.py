"""
Utility functions that may prove useful when writing an ACME client.

These are the key-formatting and CSR-generation collaborators of the
operations in `txbac.client`.
"""
from functools import wraps

from josepy.errors import DeserializationError
from josepy.json_util import decode_b64jose, encode_b64jose

from cryptography import x509
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID
from twisted.internet.defer import maybeDeferred
from twisted.python.url import URL

from txbac.codec import bytes_to_hex


def generate_private_key(key_type):
    """
    Generate a random private key using sensible parameters.

    :param str key_type: The type of key to generate. One of: ``ec`` (P-256,
        usable as an account key) or ``rsa``.
    """
    if key_type == u'ec':
        return ec.generate_private_key(ec.SECP256R1(), default_backend())
    if key_type == u'rsa':
        return rsa.generate_private_key(
            public_exponent=65537, key_size=2048, backend=default_backend())
    raise ValueError(key_type)


def _pem_bytes(pem):
    if isinstance(pem, str):
        return pem.encode('ascii')
    return pem


def load_private_key(pem):
    """
    Load an unencrypted PEM private key (SEC1 or PKCS#8).

    :param pem: ``str`` or ``bytes``.
    """
    return serialization.load_pem_private_key(
        _pem_bytes(pem), password=None, backend=default_backend())


def load_public_key(pem):
    """
    Load a PEM SubjectPublicKeyInfo public key.
    """
    return serialization.load_pem_public_key(
        _pem_bytes(pem), backend=default_backend())


def private_key_pem(key):
    """
    Serialize a private key as unencrypted PKCS#8 PEM.

    :rtype: bytes
    """
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption())


def tap(f):
    """
    "Tap" a Deferred callback chain with a function whose return value is
    ignored.
    """
    @wraps(f)
    def _cb(res, *a, **kw):
        d = maybeDeferred(f, res, *a, **kw)
        d.addCallback(lambda ignored: res)
        return d
    return _cb


def encode_csr(csr):
    """
    Encode CSR as JOSE Base-64 DER.

    :param cryptography.x509.CertificateSigningRequest csr: The CSR.

    :rtype: str
    """
    return encode_b64jose(csr.public_bytes(serialization.Encoding.DER))


def decode_csr(b64der):
    """
    Decode JOSE Base-64 DER-encoded CSR.

    :param str b64der: The encoded CSR.

    :rtype: `cryptography.x509.CertificateSigningRequest`
    :return: The decoded CSR.
    """
    try:
        return x509.load_der_x509_csr(
            decode_b64jose(b64der), default_backend())
    except ValueError as error:
        raise DeserializationError(error)


def csr_for_names(names, key):
    """
    Generate a certificate signing request for the given names and private key.

    ..  seealso:: `generate_private_key`

    :param ``List[str]``: One or more names (subjectAltName) for which to
        request a certificate.  The first one is the common name.
    :param key: A Cryptography private key object.

    :rtype: `cryptography.x509.CertificateSigningRequest`
    :return: The certificate request message.
    """
    if len(names) == 0:
        raise ValueError('Must have at least one name')
    if len(names[0]) > 64:
        common_name = u'san.too.long.invalid'
    else:
        common_name = names[0]
    return (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([
            x509.NameAttribute(NameOID.COMMON_NAME, common_name)]))
        .add_extension(
            x509.SubjectAlternativeName(list(map(x509.DNSName, names))),
            critical=False)
        .sign(key, hashes.SHA256(), default_backend()))


def make_csr(common_name, key, dns_names=()):
    """
    Build the ``csr`` value of a finalize request.

    :param str common_name: The subject common name; also the first SAN.
    :param key: The certificate's private key.  Its public half is what the
        CSR certifies.
    :param dns_names: Further subjectAltNames.

    :rtype: str
    :return: The base64url DER CSR.
    """
    names = [common_name]
    names.extend(name for name in dns_names if name not in names)
    return encode_csr(csr_for_names(names, key))


def _integer_bytes(value):
    """
    The content octets of a DER INTEGER holding a non-negative ``value``.
    """
    length = value.bit_length() // 8 + 1
    return value.to_bytes(length, 'big')


def certificate_identifier(cert):
    """
    The renewal-info identifier parts of a certificate.

    :param cert: A ``cryptography.x509.Certificate`` carrying an
        authorityKeyIdentifier extension.

    :rtype: Tuple[str, str]
    :return: The key identifier and the DER serial number, as hex.
    """
    aki = cert.extensions.get_extension_for_class(
        x509.AuthorityKeyIdentifier).value.key_identifier
    return bytes_to_hex(aki), bytes_to_hex(_integer_bytes(cert.serial_number))


def directory_url_text(url):
    """
    Accept a ``twisted.python.url.URL`` or text for a directory URL, raising
    `TypeError` for anything else.

    :rtype: str
    """
    if isinstance(url, URL):
        return url.asText()
    if isinstance(url, str):
        return url
    raise TypeError(
        'ACME directory URL should be a twisted.python.url.URL or str, '
        'got {!r} instead'.format(url))


__all__ = [
    'generate_private_key', 'load_private_key', 'load_public_key',
    'private_key_pem', 'encode_csr', 'decode_csr', 'csr_for_names',
    'make_csr', 'certificate_identifier', 'directory_url_text', 'tap']
