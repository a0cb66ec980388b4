"""
Exception types for txbac.
"""
import attr


@attr.s(auto_exc=True)
class InvalidInput(ValueError):
    """
    A value could not be decoded.
    """
    value = attr.ib()
    reason = attr.ib()

    def __str__(self):
        return repr(self)


@attr.s(auto_exc=True)
class NoNonceAvailable(Exception):
    """
    Neither a previous response nor the nonce endpoint yielded a nonce.

    Inside a signed retry loop this only costs the current attempt.
    """
    url = attr.ib()

    def __str__(self):
        return repr(self)


@attr.s(auto_exc=True)
class MalformedResponse(Exception):
    """
    A response body could not be decoded.

    The nonce and location the response carried are kept, so the caller can
    go on with the next request.
    """
    code = attr.ib()
    reason = attr.ib()
    nonce = attr.ib(default=None)
    location = attr.ib(default=None)

    def __str__(self):
        return repr(self)


@attr.s(auto_exc=True)
class OperationFailed(Exception):
    """
    An operation produced a `~txbac.messages.Failed` envelope where the caller
    needed a value.
    """
    result = attr.ib()

    def __str__(self):
        return repr(self)


__all__ = [
    'InvalidInput', 'MalformedResponse', 'NoNonceAvailable',
    'OperationFailed']
