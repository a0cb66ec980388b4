"""
Tests for `txbac.codec`.
"""
from hypothesis import given
from hypothesis import strategies as s
from twisted.trial.unittest import TestCase

from txbac.codec import (
    base64url_decode, base64url_encode, bytes_to_hex, hex_to_bytes)
from txbac.errors import InvalidInput
from txbac.test.strategies import hex_strings


class Base64URLTests(TestCase):
    """
    `.base64url_encode` and `.base64url_decode` use the unpadded URL-safe
    alphabet.
    """
    @given(s.binary())
    def test_bytes_roundtrip(self, data):
        """
        Encoding then decoding gives back the bytes, and the encoding never
        contains padding or characters outside the URL-safe alphabet.
        """
        encoded = base64url_encode(data)
        self.assertNotIn(u'=', encoded)
        self.assertNotIn(u'+', encoded)
        self.assertNotIn(u'/', encoded)
        self.assertEqual(data, base64url_decode(encoded))

    @given(s.text())
    def test_text_is_utf8(self, text):
        """
        Text is encoded as UTF-8 before base64url.
        """
        self.assertEqual(
            text.encode('utf-8'), base64url_decode(base64url_encode(text)))

    def test_known_values(self):
        """
        Bytes that would need ``+``, ``/`` or padding in standard base64.
        """
        self.assertEqual(u'-_8', base64url_encode(b'\xfb\xff'))
        self.assertEqual(u'e30', base64url_encode(u'{}'))
        self.assertEqual(u'', base64url_encode(b''))

    def test_decode_rejects_padding(self):
        """
        Padded or standard-alphabet input is not base64url.
        """
        for bad in [u'e30=', u'+/8', u'a b', u'abcde']:
            with self.assertRaises(InvalidInput):
                base64url_decode(bad)

    def test_decode_bytes_input(self):
        """
        ASCII bytes input is accepted too.
        """
        self.assertEqual(b'{}', base64url_decode(b'e30'))


class HexTests(TestCase):
    """
    `.hex_to_bytes` decodes two characters per byte.
    """
    @given(hex_strings())
    def test_roundtrip(self, value):
        """
        Decoding then re-encoding gives the lowercase input.
        """
        self.assertEqual(value.lower(), bytes_to_hex(hex_to_bytes(value)))

    def test_odd_length(self):
        """
        An odd number of characters is invalid.
        """
        with self.assertRaises(InvalidInput):
            hex_to_bytes(u'abc')

    def test_not_hex(self):
        """
        Non-hex characters are invalid.
        """
        with self.assertRaises(InvalidInput) as cm:
            hex_to_bytes(u'zz')
        self.assertEqual(u'zz', cm.exception.value)

    def test_mixed_case(self):
        self.assertEqual(b'\xab\xcd', hex_to_bytes(u'aBCd'))
