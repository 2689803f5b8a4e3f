"""Exceptions raised while building requests and checking
assertions.

L{ProtocolError} escapes to callers. The L{AuthenticationError}
family is caught by the verifier and reported as a failed
L{Response<openid_rp.response.Response>}.
"""
from openid_rp.message import OPENID_NS


class ProtocolError(ValueError):
    """A message or request violates the protocol."""


class AuthenticationError(ValueError):
    '''
    Base class for all reasons to reject an assertion from a provider.
    '''
    def __init__(self, message, response=None):
        super().__init__(message)
        self.response = response


class DiscoveryMismatch(AuthenticationError):
    '''
    The asserted endpoint is not among those a fresh discovery on the
    claimed identifier returned.
    '''


class ReplayDetected(AuthenticationError):
    '''
    The assertion's nonce has already been used.
    '''


class SignatureInvalid(AuthenticationError):
    '''
    A signature or signed token does not verify.
    '''


class TokenExpired(SignatureInvalid):
    pass


class PrivateRPSecretNotFound(AuthenticationError):
    '''
    The relying party's own secret for a handle is unknown or expired.
    '''


class ServerError(Exception):
    """The provider returned a 400 response code to a direct request."""

    def __init__(self, error_text, error_code, message):
        Exception.__init__(self, error_text)
        self.error_text = error_text
        self.error_code = error_code
        self.message = message

    @classmethod
    def fromMessage(cls, message):
        """Generate a ServerError instance, extracting the error text
        and the error code from the message."""
        error_text = message.getArg(
            OPENID_NS, 'error', '<no error message supplied>')
        error_code = message.getArg(OPENID_NS, 'error_code')
        return cls(error_text, error_code, message)
