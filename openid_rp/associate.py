# -*- test-case-name: openid_rp.test.test_associate -*-
"""Association negotiation with providers.

An association lets the relying party check assertions itself
instead of asking the provider with a C{check_authentication} request
for each of them. Failing to get one is never an error: the caller
just carries on in dumb mode.
"""
import http.client
import logging
import urllib.error

from openid_rp import cryptutil
from openid_rp import fetchers
from openid_rp import oidutil
from openid_rp.association import Association, SessionNegotiator, \
     default_association_order, isCompatible
from openid_rp.dh import DiffieHellman
from openid_rp.errors import ProtocolError, ServerError
from openid_rp.message import Message, OPENID_NS, OPENID1_NS, OPENID2_NS, no_default
from openid_rp.security import SecuritySettings


def makeKVPost(request_message, server_url):
    """Make a Direct Request to an OpenID Provider and return the
    result as a Message object.

    @raises urllib.error.URLError: if an error is
        encountered in making the HTTP post.
    @raises ServerError: if the provider answers with HTTP 400

    @rtype: L{openid_rp.message.Message}
    """
    body = request_message.toURLEncoded().encode('utf-8')
    try:
        response = fetchers.fetch(server_url, body=body)
        return Message.fromKVForm(response.read())
    except urllib.error.HTTPError as e:
        if e.code == 400:
            raise ServerError.fromMessage(Message.fromKVForm(e.read()))
        raise


class DiffieHellmanSHA1ConsumerSession(object):
    session_type = 'DH-SHA1'
    hash_func = staticmethod(cryptutil.sha1)
    secret_size = 20
    allowed_assoc_types = ['HMAC-SHA1']

    def __init__(self, dh=None):
        if dh is None:
            dh = DiffieHellman.fromDefaults()
        self.dh = dh

    def getRequest(self):
        args = {'dh_consumer_public': cryptutil.longToBase64(self.dh.public)}

        if not self.dh.usingDefaultValues():
            args.update({
                'dh_modulus': cryptutil.longToBase64(self.dh.modulus),
                'dh_gen': cryptutil.longToBase64(self.dh.generator),
                })

        return args

    def extractSecret(self, response):
        dh_server_public64 = response.getArg(
            OPENID_NS, 'dh_server_public', no_default)
        enc_mac_key64 = response.getArg(OPENID_NS, 'enc_mac_key', no_default)
        dh_server_public = cryptutil.base64ToLong(dh_server_public64)
        enc_mac_key = oidutil.fromBase64(enc_mac_key64)
        return self.dh.xorSecret(dh_server_public, enc_mac_key, self.hash_func)


class DiffieHellmanSHA256ConsumerSession(DiffieHellmanSHA1ConsumerSession):
    session_type = 'DH-SHA256'
    hash_func = staticmethod(cryptutil.sha256)
    secret_size = 32
    allowed_assoc_types = ['HMAC-SHA256']


class PlainTextConsumerSession(object):
    session_type = 'no-encryption'
    allowed_assoc_types = ['HMAC-SHA1', 'HMAC-SHA256']

    def getRequest(self):
        return {}

    def extractSecret(self, response):
        mac_key64 = response.getArg(OPENID_NS, 'mac_key', no_default)
        return oidutil.fromBase64(mac_key64)


SESSION_CLASSES = {
    'DH-SHA1': DiffieHellmanSHA1ConsumerSession,
    'DH-SHA256': DiffieHellmanSHA256ConsumerSession,
    'no-encryption': PlainTextConsumerSession,
}


def create_session(session_type):
    return SESSION_CLASSES[session_type]()


def negotiatorFor(security, endpoint):
    """The association/session pairs allowed with this endpoint, most
    preferred first.

    Pairs outside the security settings' hash range are left out, as
    are SHA-256 associations with OpenID 1 providers and plain-text
    sessions over unencrypted HTTP.
    """
    secure_channel = (endpoint.server_url or '').lower().startswith('https:')
    allowed = []
    for assoc_type, session_type in default_association_order:
        if not security.isAssociationInPermittedRange(assoc_type):
            continue
        if endpoint.compat_mode() and assoc_type != 'HMAC-SHA1':
            continue
        if (session_type == 'no-encryption' and not secure_channel and
                not security.allow_plaintext_associations_over_http):
            continue
        allowed.append((assoc_type, session_type))
    return SessionNegotiator(allowed)


class AssociationManager(object):
    """Finds or makes associations with provider endpoints.

    @ivar store: the L{AssociationStore<openid_rp.store.interface.AssociationStore>},
        or None for dumb mode only
    @ivar security: the L{SecuritySettings<openid_rp.security.SecuritySettings>}
    """

    def __init__(self, store, security=None):
        self.store = store
        self.security = security or SecuritySettings()

    def getExisting(self, endpoint):
        """A stored association for the endpoint that the security
        settings allow and that will outlive an authentication round
        trip, or None."""
        if self.store is None:
            return None

        assoc = self.store.getAssociation(endpoint.server_url)
        if assoc is None:
            return None
        if not self.security.isAssociationInPermittedRange(assoc.assoc_type):
            logging.info('Ignoring %s association with %s: outside the permitted range'
                         % (assoc.assoc_type, endpoint.server_url))
            return None
        if not assoc.hasUsefulLifeRemaining(self.security.max_authentication_time):
            return None
        return assoc

    def getOrCreate(self, endpoint):
        """The existing association for the endpoint, or a newly
        negotiated and stored one, or None if the provider can't or
        won't associate with us.

        @rtype: L{Association<openid_rp.association.Association>} or None
        """
        if self.store is None:
            return None

        assoc = self.getExisting(endpoint)
        if assoc is not None:
            return assoc

        try:
            assoc = self._negotiateAssociation(endpoint)
        except (OSError, http.client.HTTPException, ValueError, KeyError,
                ServerError) as why:
            logging.exception('Association with %s failed: %s' % (endpoint.server_url, why))
            return None

        if assoc is not None:
            self.store.storeAssociation(endpoint.server_url, assoc)
        return assoc

    def _negotiateAssociation(self, endpoint):
        """Make association requests to the server, retrying at most
        once with a type the server suggests.

        @returns: a new association object or None
        """
        negotiator = negotiatorFor(self.security, endpoint)
        assoc_type, session_type = negotiator.getAllowedType()
        if assoc_type is None:
            logging.error('No association type allowed with %s' % (endpoint.server_url,))
            return None

        try:
            return self._requestAssociation(endpoint, assoc_type, session_type)
        except ServerError as why:
            supported = self._extractSupportedAssociationType(why, endpoint, negotiator)
            if supported is None:
                return None

        assoc_type, session_type = supported
        try:
            return self._requestAssociation(endpoint, assoc_type, session_type)
        except ServerError:
            # Do not keep trying, since it rejected the
            # association type that it told us to use.
            logging.error(
                'Server %s refused its suggested association '
                'type: session_type=%s, assoc_type=%s'
                % (endpoint.server_url, session_type, assoc_type))
            return None

    def _extractSupportedAssociationType(self, server_error, endpoint, negotiator):
        """Handle ServerErrors resulting from association requests.

        @returns: If server replied with an C{unsupported-type} error
            naming a pair we accept, that (C{assoc_type},
            C{session_type}). Otherwise logs the error and returns None.
        @rtype: tuple or None
        """
        if (server_error.error_code != 'unsupported-type' or
                server_error.message.isOpenID1()):
            logging.error(
                'Server error when requesting an association from %r: %s'
                % (endpoint.server_url, server_error.error_text))
            return None

        assoc_type = server_error.message.getArg(OPENID_NS, 'assoc_type')
        session_type = server_error.message.getArg(OPENID_NS, 'session_type')

        if assoc_type is None or session_type is None:
            logging.error('Server responded with unsupported association '
                          'session but did not supply a fallback.')
            return None
        if not self.security.isAssociationInPermittedRange(assoc_type):
            logging.error('Server suggested association type %s outside the permitted range'
                          % (assoc_type,))
            return None
        if not isCompatible(assoc_type, session_type):
            logging.error('Server suggested incompatible session/association type: '
                          'session_type=%s, assoc_type=%s' % (session_type, assoc_type))
            return None
        if not negotiator.isAllowed(assoc_type, session_type):
            logging.error('Server sent unsupported session/association type: '
                          'session_type=%s, assoc_type=%s' % (session_type, assoc_type))
            return None
        return assoc_type, session_type

    def _requestAssociation(self, endpoint, assoc_type, session_type):
        """Make and process one association request to this endpoint's
        OP endpoint URL.

        @raises ServerError: when the remote OpenID server returns an error.
        @raises ProtocolError: when the response is malformed
        @raises KeyError: when the response lacks a required field
        """
        assoc_session, args = self._createAssociateRequest(
            endpoint, assoc_type, session_type)
        response = makeKVPost(args, endpoint.server_url)
        return self._extractAssociation(response, assoc_session)

    def _createAssociateRequest(self, endpoint, assoc_type, session_type):
        """Create an association request for the given assoc_type and
        session_type.

        @returns: a pair of the association session object and the
            request message that will be sent to the server.
        @rtype: (association session, openid_rp.message.Message)
        """
        assoc_session = create_session(session_type)

        args = {
            'mode': 'associate',
            'assoc_type': assoc_type,
            }

        if not endpoint.compat_mode():
            args['ns'] = OPENID2_NS

        # Leave out the session type if we're in compatibility mode
        # *and* it's no-encryption.
        if (not endpoint.compat_mode() or
                assoc_session.session_type != 'no-encryption'):
            args['session_type'] = assoc_session.session_type

        args.update(assoc_session.getRequest())
        return assoc_session, Message.fromOpenIDArgs(args)

    def _getOpenID1SessionType(self, assoc_response):
        """The session type of an OpenID 1 association response, where
        a missing or empty one means 'no-encryption'."""
        session_type = assoc_response.getArg(OPENID1_NS, 'session_type')

        if session_type == 'no-encryption':
            logging.warning('OpenID server sent "no-encryption" '
                            'for OpenID 1.X')
        elif not session_type:
            session_type = 'no-encryption'

        return session_type

    def _extractAssociation(self, assoc_response, assoc_session):
        """Attempt to extract an association from the response, given
        the association response message and the established
        association session.

        @raises ProtocolError: when data is malformed
        @raises KeyError: when a field is missing

        @rtype: openid_rp.association.Association
        """
        assoc_type = assoc_response.getArg(
            OPENID_NS, 'assoc_type', no_default)
        assoc_handle = assoc_response.getArg(
            OPENID_NS, 'assoc_handle', no_default)

        # expires_in is a base-10 string. The Python parsing will
        # accept literals that have whitespace around them and will
        # accept negative values. Neither of these are really in-spec,
        # but we think it's OK to accept them.
        expires_in_str = assoc_response.getArg(
            OPENID_NS, 'expires_in', no_default)
        try:
            expires_in = int(expires_in_str)
        except ValueError as why:
            raise ProtocolError('Invalid expires_in field: %s' % (why,))

        if assoc_response.isOpenID1():
            session_type = self._getOpenID1SessionType(assoc_response)
        else:
            session_type = assoc_response.getArg(
                OPENID2_NS, 'session_type', no_default)

        if assoc_session.session_type != session_type:
            if (assoc_response.isOpenID1() and
                    session_type == 'no-encryption'):
                # In OpenID 1, any association request can result in a
                # 'no-encryption' association response.
                assoc_session = PlainTextConsumerSession()
            else:
                raise ProtocolError('Session type mismatch. Expected %r, got %r'
                                    % (assoc_session.session_type, session_type))

        if assoc_type not in assoc_session.allowed_assoc_types:
            raise ProtocolError('Unsupported assoc_type for session %s returned: %s'
                                % (assoc_session.session_type, assoc_type))

        if not self.security.isAssociationInPermittedRange(assoc_type):
            raise ProtocolError('Association type %s is outside the permitted range'
                                % (assoc_type,))

        try:
            secret = assoc_session.extractSecret(assoc_response)
            return Association.fromExpiresIn(
                expires_in, assoc_handle, secret, assoc_type)
        except ValueError as why:
            raise ProtocolError('Malformed response for %s session: %s'
                                % (assoc_session.session_type, why))
