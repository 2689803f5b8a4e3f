# -*- test-case-name: openid_rp.test.test_consumer -*-
"""OpenID support for Relying Parties (aka Consumers).

This module documents the main interface with the OpenID relying
party library, the L{RelyingParty} class.


OVERVIEW
========

    The OpenID identity verification process most commonly uses the
    following steps, as visible to the user of this library:

        1. The user enters their OpenID into a field on the relying
           party's site, and hits a login button.

        2. The site discovers the user's OpenID provider.

        3. The site sends the browser a redirect to the OpenID
           provider. This is the authentication request.

        4. The OpenID provider's site sends the browser a redirect
           back to the site. This redirect contains the provider's
           response to the authentication request.

    The site must handle two separate HTTP requests in order to
    perform the full identity check, and nothing but the stores
    passed to L{RelyingParty} and what travels in the URLs survives
    between them.


USING THIS LIBRARY
==================

    Create a L{RelyingParty} once per process with a store::

        rp = RelyingParty(MemoryStore())

    When the user submits their identifier, get a request builder,
    add extensions if needed and redirect::

        builder = rp.begin(identifier, realm='https://example.com/',
                           return_to='https://example.com/openid/return')
        builder.addExtension(sreg.SRegRequest(required=['email']))
        redirect(rp.redirectURL(builder.build()))

    L{begin} raises L{DiscoveryFailure<openid_rp.discover.DiscoveryFailure>}
    when there is nothing to authenticate with. Use L{createRequests}
    to get builders for all usable endpoints instead of the best one.

    When the user comes back to the return_to URL, pass all the query
    arguments and the URL itself to L{complete}::

        response = rp.complete(request.GET, request.url)
        return response.match(
            authenticated=lambda r: login(r.claimed_id),
            canceled=lambda r: show_login_page(),
            setup_required=lambda r: show_login_page(r.user_supplied_id),
            failed=lambda r: show_error(r.cause),
        )


STORES AND DUMB MODE
====================

    With an association store the library makes associations with
    providers and checks their signatures itself. It also needs a
    nonce store to detect replayed assertions; a store that
    implements both, like L{MemoryStore<openid_rp.store.memstore.MemoryStore>},
    serves as both.

    Without a store (C{RelyingParty(None)}) every assertion is
    checked by asking the provider with a direct request. The
    library then keeps its own secret and used nonces in memory, so
    this only suits a single process.
"""
import logging
import urllib.parse

from openid_rp import cryptutil
from openid_rp import discover as discover_module
from openid_rp import oidutil
from openid_rp import token
from openid_rp.associate import AssociationManager
from openid_rp.request import AssociationPreference, AuthRequestBuilder, \
     NONCE_ARG, RETURN_TO_SIG_ARG, RETURN_TO_SIG_HANDLE_ARG, TOKEN_ARG, \
     USER_SUPPLIED_ID_ARG, checkRealm, partitionEndpoints, returnToSignatureBase, \
     selectEndpoints, toMessage
from openid_rp.secret import PrivateSecretManager
from openid_rp.security import SecuritySettings
from openid_rp.store.memstore import MemoryStore
from openid_rp.store.nonce import mkNonce
from openid_rp.verify import AssertionVerifier

__all__ = ['RelyingParty']

TOKEN_KEY_SIZE = 32


class RelyingParty(object):
    """The relying party end of OpenID authentication.

    @ivar store: the association store, or None for dumb mode
    @ivar nonce_store: the store that remembers used nonces
    @ivar security: the L{SecuritySettings<openid_rp.security.SecuritySettings>}
    @ivar discover: the discovery callable
    """

    def __init__(self, store, nonce_store=None, security=None, discover=None,
                 token_key=None):
        """
        @param store: an L{AssociationStore<openid_rp.store.interface.AssociationStore>},
            or None to work without associations
        @param nonce_store: a L{NonceStore<openid_rp.store.interface.NonceStore>}.
            Defaults to C{store} when it is one too.
        @param security: policy settings, the defaults if None
        @param discover: a callable taking an identifier and returning a
            list of L{Service<openid_rp.discover.Service>}. Defaults to
            L{openid_rp.discover.discover}.
        @param token_key: key for the endpoint tokens of OpenID 1
            requests. Processes sharing the stores must share this
            too; a random key is made when none is given.

        @raises ValueError: if C{store} is given without a nonce store
        """
        self.store = store
        self.security = security or SecuritySettings()
        self.discover = discover or discover_module.discover

        if store is None:
            private_store = MemoryStore()
            if nonce_store is None:
                nonce_store = private_store
        else:
            private_store = store
            if nonce_store is None:
                if not hasattr(store, 'useNonce'):
                    raise ValueError('A nonce store is required with an association store')
                nonce_store = store
        self.nonce_store = nonce_store

        if token_key is None:
            token_key = cryptutil.randomBytes(TOKEN_KEY_SIZE)
        self.token_key = token_key

        self.associations = AssociationManager(store, self.security)
        self.secrets = PrivateSecretManager(private_store, self.security)
        self.verifier = AssertionVerifier(
            store, nonce_store, self.secrets, token_key, self.security, self.discover)

    def createRequests(self, identifier, realm, return_to, predicate=None):
        """Discover the identifier and make a request builder for each
        endpoint worth trying, best first.

        Endpoints whose provider would not associate with us come
        after the others and won't be asked again for an association.
        They are left out altogether when associations are required.

        Every call discovers and associates afresh. An identifier that
        can't be discovered gives no builders.

        @param predicate: optional callable to filter endpoints
        @rtype: [L{AuthRequestBuilder<openid_rp.request.AuthRequestBuilder>}]
        @raises ProtocolError: if the realm is malformed or doesn't
            contain return_to, before anything is fetched
        """
        checkRealm(realm, return_to)

        try:
            endpoints = self.discover(identifier)
        except discover_module.DiscoveryFailure as why:
            logging.error('Discovery on %s failed: %s' % (identifier, why))
            return []

        op_endpoints = [e for e in endpoints if e.is_op_identifier()]
        if op_endpoints:
            endpoints = op_endpoints

        endpoints = [
            e if e.user_supplied_id else e.copy(user_supplied_id=identifier)
            for e in endpoints
        ]
        endpoints = selectEndpoints(endpoints, self.security, predicate)
        ready, deferred = partitionEndpoints(endpoints, self.associations)

        builders = [
            AuthRequestBuilder(e, realm, return_to, AssociationPreference.IF_POSSIBLE)
            for e in ready
        ]
        if self.security.require_association:
            if deferred:
                logging.info('Dropping %d endpoint(s) without an association' % len(deferred))
        else:
            builders.extend(
                AuthRequestBuilder(e, realm, return_to, AssociationPreference.IF_ALREADY_ESTABLISHED)
                for e in deferred
            )

        logging.info('%d request(s) for %s' % (len(builders), identifier))
        return builders

    def begin(self, identifier, realm, return_to, predicate=None):
        """The request builder for the best endpoint of an identifier.

        @raises DiscoveryFailure: when no usable endpoint is found
        @raises ProtocolError: if the realm doesn't contain return_to
        """
        builders = self.createRequests(identifier, realm, return_to, predicate)
        if not builders:
            raise discover_module.DiscoveryFailure(
                'No usable OpenID endpoint found for %s' % (identifier,))
        return builders[0]

    def _getAssociation(self, request):
        preference = request.association_preference
        if preference is AssociationPreference.NEVER:
            return None
        if preference is AssociationPreference.IF_ALREADY_ESTABLISHED:
            return self.associations.getExisting(request.endpoint)
        return self.associations.getOrCreate(request.endpoint)

    def _returnToArgs(self, request, assoc):
        """The arguments to add to return_to, signed where needed.

        @rtype: [(str, str)]
        """
        endpoint = request.endpoint
        args = dict(request.untrusted_callback_arguments)
        args.update(request.callback_arguments)
        if endpoint.user_supplied_id:
            args[USER_SUPPLIED_ID_ARG] = endpoint.user_supplied_id

        use_nonce = False
        if endpoint.compat_mode():
            args[TOKEN_ARG] = token.serialize(
                endpoint.claimed_id, endpoint.local_id or '', endpoint.server_url,
                self.token_key)
            if self.security.protect_downlevel_replay:
                args[NONCE_ARG] = mkNonce()
                use_nonce = True

        args = sorted(args.items())
        if request.sign_callback_arguments or use_nonce or assoc is None:
            handle = self.secrets.currentHandle()
            existing = urllib.parse.parse_qsl(
                urllib.parse.urlparse(request.return_to).query, keep_blank_values=True)
            signature = self.secrets.sign(returnToSignatureBase(existing + args), handle)
            args.append((RETURN_TO_SIG_HANDLE_ARG, handle))
            args.append((RETURN_TO_SIG_ARG, oidutil.toBase64(signature)))
        return args

    def redirectURL(self, request):
        """The provider URL to send the user agent to.

        @param request: a built L{AuthRequest<openid_rp.request.AuthRequest>}
        @rtype: str
        """
        assoc = self._getAssociation(request)
        return_to = oidutil.appendArgs(request.return_to, self._returnToArgs(request, assoc))
        message = toMessage(request, return_to, assoc)
        return message.toURL(request.endpoint.server_url)

    def complete(self, query, current_url):
        """Called to interpret the server's response to an OpenID
        request. It is called in step 4 of the flow described in the
        overview.

        @param query: A dictionary of the query parameters for this
            HTTP request.

        @param current_url: The URL used to invoke the application.
            Extract the URL from your application's web
            request framework and specify it here to have it checked
            against the openid.return_to value in the response.

        @rtype: L{Response<openid_rp.response.Response>}
        """
        return self.verifier.verify(query, current_url)
