# -*- coding: utf-8 -*-
"""
Interface definitions for txbac.
"""
from zope.interface import Attribute, Interface


class IHTTPTransport(Interface):
    """
    The HTTP collaborator every ACME operation talks through.
    """
    clock = Attribute(
        """
        The ``IReactorTime`` provider used for backoff delays.
        """)

    def request(method, url, data=None, content_type=None, accept=None):
        """
        Make one HTTP request, without retrying.

        :param str method: ``GET``, ``HEAD`` or ``POST``.
        :param str url: The URL to request.
        :param bytes data: The request body.
        :param bytes content_type: The ``Content-Type`` of ``data``.
        :param bytes accept: The ``Accept`` header to send.

        :return: ``Deferred`` firing with a response exposing ``code``,
            ``headers`` (``twisted.web.http_headers.Headers``), ``json()`` and
            ``content()``, or failing if no response was received.
        """

    def stop():
        """
        Release any pooled connections.

        :rtype: ``Deferred``
        """


__all__ = ['IHTTPTransport']
