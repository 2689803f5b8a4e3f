# -*- test-case-name: openid_rp.test.test_verify -*-
"""The outcome of checking what a provider sent back."""
import enum
import urllib.parse

from openid_rp.message import OPENID_NS, BARE_NS
from openid_rp.request import isReservedArgument, USER_SUPPLIED_ID_ARG


class Status(enum.Enum):
    AUTHENTICATED = 'authenticated'
    CANCELED = 'canceled'
    SETUP_REQUIRED = 'setup_required'
    FAILED = 'failed'


class Response(object):
    '''
    What came of an authentication attempt. Always check C{status}, or
    use L{match}, before using anything else:

        - C{AUTHENTICATED}: C{claimed_id} is the verified identifier
        - C{CANCELED}: the user declined
        - C{SETUP_REQUIRED}: an immediate request needs the user's
          attention; start again in setup mode with C{user_supplied_id}
        - C{FAILED}: C{cause} is the exception that rejected the
          assertion

    Make these with the classmethods, not the constructor.
    '''

    def __init__(self, status, message=None, endpoint=None, signed_fields=None,
                 cause=None, setup_url=None, return_to_signed=False):
        self.status = status
        self.message = message
        self.endpoint = endpoint
        self.signed_fields = signed_fields or []
        self.cause = cause
        self.setup_url = setup_url
        self.return_to_signed = return_to_signed
        self.claimed_id = endpoint.claimed_id if endpoint is not None else None

    @classmethod
    def authenticated(cls, message, endpoint, return_to_signed=False):
        signed_list = message.getArg(OPENID_NS, 'signed').split(',')
        signed_fields = ['openid.' + s for s in signed_list]
        return cls(Status.AUTHENTICATED, message, endpoint, signed_fields,
                   return_to_signed=return_to_signed)

    @classmethod
    def canceled(cls, message):
        return cls(Status.CANCELED, message)

    @classmethod
    def setupRequired(cls, message, setup_url=None):
        return cls(Status.SETUP_REQUIRED, message, setup_url=setup_url)

    @classmethod
    def failed(cls, cause, message=None):
        return cls(Status.FAILED, message, cause=cause)

    def match(self, authenticated, canceled, setup_required, failed):
        """Call the handler for this response's status with the
        response and return its result. All four are required, so no
        outcome can be forgotten::

            return response.match(
                authenticated=login,
                canceled=lambda r: redirect('/'),
                setup_required=lambda r: retry(r.user_supplied_id),
                failed=lambda r: error(r.cause),
            )
        """
        handlers = {
            Status.AUTHENTICATED: authenticated,
            Status.CANCELED: canceled,
            Status.SETUP_REQUIRED: setup_required,
            Status.FAILED: failed,
        }
        return handlers[self.status](self)

    def isOpenID1(self):
        return self.message is not None and self.message.isOpenID1()

    def isSigned(self, ns_uri, ns_key):
        """Return whether a particular key is signed, regardless of
        its namespace alias
        """
        return (self.message is not None and
                self.message.getKey(ns_uri, ns_key) in self.signed_fields)

    def getSigned(self, ns_uri, ns_key, default=None):
        """Return the specified signed field if available,
        otherwise return default
        """
        if self.isSigned(ns_uri, ns_key):
            return self.message.getArg(ns_uri, ns_key, default)
        else:
            return default

    def getSignedNS(self, ns_uri):
        """Get signed arguments from the response message.  Return a
        dict of all arguments in the specified namespace.  If any of
        the arguments are not signed, return None.
        """
        msg_args = self.message.getArgs(ns_uri)

        for key in msg_args.keys():
            if not self.isSigned(ns_uri, key):
                return None

        return msg_args

    def extensionResponse(self, namespace_uri, require_signed):
        """Return response arguments in the specified namespace.

        @param namespace_uri: The namespace URI of the arguments to be
        returned.

        @param require_signed: True if the arguments should be among
        those signed in the response, False if you don't care.

        If require_signed is True and the arguments are not signed,
        return None.
        """
        if require_signed:
            return self.getSignedNS(namespace_uri)
        else:
            return self.message.getArgs(namespace_uri)

    def getReturnTo(self):
        """The signed C{openid.return_to}, or None."""
        return self.getSigned(OPENID_NS, 'return_to')

    def _returnToArgs(self):
        """Arguments of openid.return_to, or of the query the user
        agent came back with when there is none."""
        if self.message is None:
            return {}
        return_to = self.message.getArg(OPENID_NS, 'return_to')
        if not return_to:
            return self.message.getArgs(BARE_NS)
        query = urllib.parse.urlparse(return_to).query
        return dict(urllib.parse.parse_qsl(query, keep_blank_values=True))

    def getCallbackArguments(self):
        """The caller's return_to arguments, only if they were signed
        by us and came back unchanged.

        @rtype: dict
        """
        if not self.return_to_signed:
            return {}
        return {k: v for k, v in self._returnToArgs().items() if not isReservedArgument(k)}

    def getCallbackArgument(self, key, default=None):
        return self.getCallbackArguments().get(key, default)

    def getUntrustedCallbackArguments(self):
        """All of the caller's return_to arguments, signed or not."""
        return {k: v for k, v in self._returnToArgs().items() if not isReservedArgument(k)}

    def getUntrustedCallbackArgument(self, key, default=None):
        return self.getUntrustedCallbackArguments().get(key, default)

    @property
    def user_supplied_id(self):
        """What the user typed in when this attempt started, if known."""
        return self._returnToArgs().get(USER_SUPPLIED_ID_ARG)

    @property
    def local_id(self):
        if self.message is None:
            return None
        return self.getSigned(OPENID_NS, 'identity')

    def __eq__(self, other):
        return (
            isinstance(other, Response) and
            (self.status == other.status) and
            (self.endpoint == other.endpoint) and
            (self.message == other.message) and
            (self.signed_fields == other.signed_fields))

    def __ne__(self, other):
        return not (self == other)

    def __repr__(self):
        return '<%s.%s %s id=%r cause=%r>' % (
            self.__class__.__module__,
            self.__class__.__name__,
            self.status.name, self.claimed_id, self.cause)
