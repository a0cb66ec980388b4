"""
Result envelopes returned by every ACME operation.

An operation fires with exactly one of `Success` or `Failed`.  Protocol errors
from the server, exhausted retries and local exceptions all arrive as a
`Failed` whose `Problem` says which of the three it was; none of them is
raised to the caller.
"""
import attr
from acme import messages
from constantly import NamedConstant, Names

EXHAUSTED_STATUS = 777777
EXCEPTION_STATUS = 777779


class ErrorKind(Names):
    """
    Where a `Problem` came from.
    """
    PROTOCOL = NamedConstant()
    EXHAUSTION = NamedConstant()
    EXCEPTION = NamedConstant()


@attr.s(frozen=True)
class Problem(object):
    """
    An RFC 7807 problem, either sent by the server or synthesized locally.

    :ivar str type: The problem type URI, e.g.
        ``urn:ietf:params:acme:error:badNonce`` or ``bac:failed:createOrder``.
    :ivar detail: Human readable detail.
    :ivar int status: The problem status; the HTTP code when the server did
        not include one, or a sentinel for local problems.
    :ivar kind: One of the `ErrorKind` constants.
    :ivar dict raw: The server's problem document, verbatim.
    :ivar exception: The ``twisted.python.failure.Failure`` behind an
        `ErrorKind.EXCEPTION` problem.
    """
    type = attr.ib()
    detail = attr.ib()
    status = attr.ib()
    kind = attr.ib(default=ErrorKind.PROTOCOL)
    raw = attr.ib(default=None, repr=False)
    exception = attr.ib(default=None, repr=False, eq=False)

    @classmethod
    def from_json(cls, jobj, status=None):
        """
        Wrap a problem document returned by the server.

        :param jobj: The decoded response body.
        :param int status: The HTTP status code of the response.
        """
        if not isinstance(jobj, dict):
            return cls(
                type=u'about:blank', detail=jobj, status=status, raw=jobj)
        return cls(
            type=jobj.get(u'type', u'about:blank'),
            detail=jobj.get(u'detail'),
            status=jobj.get(u'status', status),
            raw=jobj)

    @classmethod
    def failed(cls, operation):
        """
        No response was obtained for ``operation`` in any attempt.
        """
        return cls(
            type=u'bac:failed:{}'.format(operation),
            detail=u'Could not complete {} after multiple attempts'.format(
                operation),
            status=EXHAUSTED_STATUS,
            kind=ErrorKind.EXHAUSTION)

    @classmethod
    def from_failure(cls, operation, failure):
        """
        ``operation`` raised locally.

        :param failure: The ``twisted.python.failure.Failure``.
        """
        return cls(
            type=u'bac:exception:{}'.format(operation),
            detail=failure.getErrorMessage(),
            status=EXCEPTION_STATUS,
            kind=ErrorKind.EXCEPTION,
            exception=failure)

    @property
    def code(self):
        """
        The last ``:``-separated segment of the type, e.g. ``badNonce``.

        Earlier drafts used ``urn:acme:error:`` instead of
        ``urn:ietf:params:acme:error:``; only the code matters here.
        """
        return self.type.split(u':')[-1]

    def acme_error(self):
        """
        Parse the server's document as an `acme.messages.Error`.

        :rtype: `acme.messages.Error` or ``None`` for local problems.
        """
        if self.kind is not ErrorKind.PROTOCOL or not isinstance(
                self.raw, dict):
            return None
        return messages.Error.from_json(self.raw)

    def to_json(self):
        return {u'type': self.type,
                u'detail': self.detail,
                u'status': self.status}


@attr.s(frozen=True)
class Success(object):
    """
    A successful operation.

    :ivar data: The decoded resource.
    :ivar str location: The ``Location`` header, if any.
    :ivar str nonce: A nonce for the next request, if one could be obtained.
    """
    data = attr.ib()
    location = attr.ib(default=None)
    nonce = attr.ib(default=None)

    ok = True


@attr.s(frozen=True)
class Failed(object):
    """
    A failed operation.

    :ivar Problem error: What went wrong.
    :ivar str location: The ``Location`` header of the error response, if any.
    :ivar str nonce: A nonce for the next request, if the failure came with a
        response that carried one.
    """
    error = attr.ib()
    location = attr.ib(default=None)
    nonce = attr.ib(default=None)

    ok = False


__all__ = [
    'ErrorKind', 'Problem', 'Success', 'Failed',
    'EXHAUSTED_STATUS', 'EXCEPTION_STATUS']
