"""
base64url and hex conversions used on the wire.

base64url here is the unpadded URL-safe alphabet of RFC 7515 section 2.
"""
import binascii
import re

from josepy.b64 import b64decode, b64encode

from txbac.errors import InvalidInput

_B64URL = re.compile(u'\\A[A-Za-z0-9_-]*\\Z')
_HEX = re.compile(u'\\A[0-9A-Fa-f]*\\Z')


def base64url_encode(data):
    """
    Encode ``data`` as unpadded base64url.

    :param data: ``bytes``, or text which is encoded as UTF-8 first.

    :rtype: str
    """
    if isinstance(data, str):
        data = data.encode('utf-8')
    return b64encode(bytes(data)).decode('ascii')


def base64url_decode(data):
    """
    Decode unpadded base64url.

    :param data: ``str`` or ``bytes``.

    :raises InvalidInput: If ``data`` is not base64url.

    :rtype: bytes
    """
    if isinstance(data, bytes):
        try:
            data = data.decode('ascii')
        except UnicodeDecodeError:
            raise InvalidInput(data, u'not ASCII')
    if _B64URL.match(data) is None or len(data) % 4 == 1:
        raise InvalidInput(data, u'not base64url')
    try:
        return b64decode(data)
    except (binascii.Error, ValueError) as error:
        raise InvalidInput(data, str(error))


def hex_to_bytes(value):
    """
    Decode a hex string, two characters per byte.

    :param str value: Hex digits, either case.

    :raises InvalidInput: On odd length or a non-hex character.

    :rtype: bytes
    """
    if len(value) % 2 != 0:
        raise InvalidInput(value, u'odd length')
    if _HEX.match(value) is None:
        raise InvalidInput(value, u'non-hex character')
    return bytes.fromhex(value)


def bytes_to_hex(data):
    """
    Lowercase hex encoding of ``data``.
    """
    return binascii.hexlify(data).decode('ascii')


__all__ = [
    'base64url_encode', 'base64url_decode', 'hex_to_bytes', 'bytes_to_hex']
