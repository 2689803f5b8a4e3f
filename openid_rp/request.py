# -*- test-case-name: openid_rp.test.test_request -*-
"""Choosing provider endpoints and describing authentication requests.

Selecting endpoints is pure: L{selectEndpoints} filters and orders
what discovery found. Associating is a separate step,
L{partitionEndpoints}, which is the only one touching the network.

Requests are described with an L{AuthRequestBuilder}, which is
mutable, and frozen into an L{AuthRequest} by its C{build} method.
"""
import collections
import enum
import logging
import types
import urllib.parse

from openid_rp import discover
from openid_rp import ui
from openid_rp.errors import ProtocolError
from openid_rp.message import Message, OPENID_NS, OPENID2_NS, IDENTIFIER_SELECT
from openid_rp.realm import Realm

# Arguments the relying party adds to return_to URLs for itself. Callers
# may not use these names, nor anything in the "openid." namespace.
RETURN_TO_SIG_HANDLE_ARG = 'openid_rp.return_to_sig_handle'
RETURN_TO_SIG_ARG = 'openid_rp.return_to_sig'
TOKEN_ARG = 'openid_rp.token'
NONCE_ARG = 'openid_rp.nonce'
USER_SUPPLIED_ID_ARG = 'openid_rp.userSuppliedIdentifier'

RESERVED_PREFIXES = ('openid.', 'openid_rp.')

# Nonce store context for nonces the relying party mints for OpenID 1
# providers, which send none of their own.
RETURN_TO_NONCE_CONTEXT = 'https://localhost/openid_rp/return_to_nonce'

# Sort classes of service types, lower is preferred
TYPE_ORDER = {
    discover.OPENID_IDP_2_0_TYPE: 0,
    discover.OPENID_2_0_TYPE: 1,
    discover.OPENID_1_1_TYPE: 2,
    discover.OPENID_1_0_TYPE: 3,
}
UNKNOWN_TYPE_ORDER = 10


class Mode(enum.Enum):
    SETUP = 'checkid_setup'
    IMMEDIATE = 'checkid_immediate'


class AssociationPreference(enum.Enum):
    IF_POSSIBLE = 'if_possible'
    IF_ALREADY_ESTABLISHED = 'if_already_established'
    NEVER = 'never'


def isReservedArgument(key):
    return key.startswith(RESERVED_PREFIXES)


def returnToSignatureBase(args):
    """The bytes a return_to signature covers: every argument but the
    signature itself, ordered by name regardless of case.

    @param args: sequence of (key, value) pairs from the return_to query
    @rtype: bytes
    """
    pairs = [
        (k, v) for k, v in args
        if k not in (RETURN_TO_SIG_ARG, RETURN_TO_SIG_HANDLE_ARG)
    ]
    pairs.sort(key=lambda pair: (pair[0].lower(), pair[0], pair[1]))
    return urllib.parse.urlencode(pairs).encode('utf-8')


def checkRealm(realm, return_to):
    """
    @raises ProtocolError: if the realm is malformed or doesn't
        contain the return_to URL
    """
    if not return_to:
        raise ProtocolError('A return_to URL is required')

    parsed = Realm.parse(realm)
    if parsed is None:
        raise ProtocolError('Malformed realm %r' % (realm,))
    if not parsed.contains(return_to):
        raise ProtocolError('return_to %r is not within realm %r' % (return_to, realm))


def endpointOrder(endpoint):
    """Sort key for endpoints: the best service type first, then
    service priority, then URI priority. A missing priority sorts after
    any given one."""
    type_order = min(
        [TYPE_ORDER.get(t, UNKNOWN_TYPE_ORDER) for t in endpoint.types] or [UNKNOWN_TYPE_ORDER])
    return (
        type_order,
        endpoint.service_priority is None, endpoint.service_priority or 0,
        endpoint.uri_priority is None, endpoint.uri_priority or 0,
    )


def filterEndpoints(endpoints, security, predicate=None):
    """Drop the endpoints the security settings or the caller's
    predicate rule out. The order is kept."""
    result = []
    for endpoint in endpoints:
        if not security.isVersionAllowed(endpoint.version):
            reason = 'protocol version %s below the minimum' % (endpoint.version,)
        elif predicate is not None and not predicate(endpoint):
            reason = 'rejected by the caller'
        elif security.endpoint_filter is not None and not security.endpoint_filter(endpoint):
            reason = 'rejected by the endpoint filter'
        elif security.reject_delegating_identifiers and endpoint.isDelegating():
            reason = 'delegating identifier'
        elif security.require_directed_identity and not endpoint.is_op_identifier():
            reason = 'not an OP Identifier'
        elif security.require_ssl and not _isSecure(endpoint):
            reason = 'not SSL'
        else:
            result.append(endpoint)
            continue
        logging.info('Skipping endpoint %s: %s' % (endpoint, reason))
    return result


def _isSecure(endpoint):
    urls = [endpoint.server_url, endpoint.claimed_id]
    return all(u.lower().startswith('https:') for u in urls if u)


def sortEndpoints(endpoints):
    return sorted(endpoints, key=endpointOrder)


def selectEndpoints(endpoints, security, predicate=None):
    """Filtered and sorted endpoints, best first."""
    return sortEndpoints(filterEndpoints(endpoints, security, predicate))


def partitionEndpoints(endpoints, manager, create_new=True):
    """Associate with each endpoint's provider.

    @param manager: an L{AssociationManager<openid_rp.associate.AssociationManager>}
    @param create_new: negotiate new associations, rather than only
        look for stored ones
    @returns: (ready, deferred). Deferred endpoints are those that
        could have had an association but didn't get one. Both lists
        keep the given order.
    """
    ready, deferred = [], []
    for endpoint in endpoints:
        if manager.store is None:
            ready.append(endpoint)
            continue
        if create_new:
            assoc = manager.getOrCreate(endpoint)
        else:
            assoc = manager.getExisting(endpoint)
        if assoc is None:
            logging.info('No association with %s, deferring it' % (endpoint.server_url,))
            deferred.append(endpoint)
        else:
            ready.append(endpoint)
    return ready, deferred


class AuthRequest(collections.namedtuple('AuthRequest', [
        'endpoint', 'realm', 'return_to', 'mode', 'association_preference',
        'extensions', 'callback_arguments', 'untrusted_callback_arguments', 'popup'])):
    """A complete authentication request, ready to be turned into a
    redirect by L{RelyingParty.redirectURL<openid_rp.consumer.RelyingParty.redirectURL>}.

    Make these with L{AuthRequestBuilder}.

    @ivar callback_arguments: arguments returned to us through
        return_to that are signed so they can be trusted
    @ivar untrusted_callback_arguments: arguments returned through
        return_to that anyone could have changed
    """
    __slots__ = ()

    @property
    def immediate(self):
        return self.mode is Mode.IMMEDIATE

    @property
    def sign_callback_arguments(self):
        return bool(self.callback_arguments)


class AuthRequestBuilder(object):
    """Collects what goes into an authentication request for one
    endpoint.

    @ivar endpoint: the L{Service<openid_rp.discover.Service>} to
        authenticate with
    """

    def __init__(self, endpoint, realm, return_to,
                 association_preference=AssociationPreference.IF_POSSIBLE):
        self.endpoint = endpoint
        self.realm = realm
        self.return_to = return_to
        self.mode = Mode.SETUP
        self.association_preference = association_preference
        self.extensions = []
        self.callback_arguments = {}
        self.untrusted_callback_arguments = {}
        self.popup = False

    def addExtension(self, extension):
        """Add an extension request, e.g. an
        L{SRegRequest<openid_rp.sreg.SRegRequest>}."""
        self.extensions.append(extension)
        return self

    def addCallbackArgument(self, key, value):
        """Add an argument to return_to that will be signed, so it
        can be trusted when it comes back.

        @raises ValueError: for names reserved by the protocol or by
            this library
        """
        self._checkArgumentName(key)
        self.callback_arguments[key] = value
        return self

    def setUntrustedCallbackArgument(self, key, value):
        """Add an argument to return_to that will not be signed."""
        self._checkArgumentName(key)
        self.untrusted_callback_arguments[key] = value
        return self

    def _checkArgumentName(self, key):
        if isReservedArgument(key):
            raise ValueError('Callback argument name %r is reserved' % (key,))

    def setImmediate(self, immediate=True):
        self.mode = Mode.IMMEDIATE if immediate else Mode.SETUP
        return self

    def setPopup(self, popup=True):
        """Ask the provider to render its pages for a popup window.
        Only OpenID 2 providers are told about it."""
        self.popup = popup
        return self

    def setAssociationPreference(self, preference):
        self.association_preference = AssociationPreference(preference)
        return self

    def build(self):
        """Check the request and freeze it.

        @raises ProtocolError: if the realm is malformed or doesn't
            contain the return_to URL
        @rtype: L{AuthRequest}
        """
        checkRealm(self.realm, self.return_to)

        extensions = list(self.extensions)
        if self.popup and not self.endpoint.compat_mode():
            extensions.append(ui.UIRequest())

        return AuthRequest(
            endpoint=self.endpoint,
            realm=self.realm,
            return_to=self.return_to,
            mode=self.mode,
            association_preference=self.association_preference,
            extensions=tuple(extensions),
            callback_arguments=types.MappingProxyType(dict(self.callback_arguments)),
            untrusted_callback_arguments=types.MappingProxyType(
                dict(self.untrusted_callback_arguments)),
            popup=self.popup,
        )


def toMessage(request, return_to, assoc=None):
    """Produce the L{Message<openid_rp.message.Message>} to send
    the user agent to the provider with.

    @param request: the L{AuthRequest}
    @param return_to: the final return_to URL, with all the callback
        arguments in it
    @param assoc: the association to use or None for stateless mode
    @rtype: L{openid_rp.message.Message}
    """
    endpoint = request.endpoint
    message = Message(endpoint.ns())
    for extension in request.extensions:
        extension.toMessage(message)

    if message.isOpenID1():
        realm_key = 'trust_root'
    else:
        realm_key = 'realm'

    message.updateArgs(OPENID_NS, {
        realm_key: request.realm,
        'mode': request.mode.value,
        'return_to': return_to,
    })

    if endpoint.is_op_identifier():
        claimed_id = request_identity = IDENTIFIER_SELECT
    else:
        request_identity = endpoint.identity()
        claimed_id = endpoint.claimed_id

    message.setArg(OPENID_NS, 'identity', request_identity)
    if message.isOpenID2():
        message.setArg(OPENID2_NS, 'claimed_id', claimed_id)

    if assoc:
        message.setArg(OPENID_NS, 'assoc_handle', assoc.handle)
        assoc_log_msg = 'with association %s' % (assoc.handle,)
    else:
        assoc_log_msg = 'using stateless mode.'

    logging.info('Generated %s request to %s %s' %
                 (request.mode.value, endpoint.server_url, assoc_log_msg))

    return message
