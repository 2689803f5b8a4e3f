# -*- test-case-name: openid_rp.test.test_verify -*-
"""Checking what a provider sends back to the return_to URL.

A positive assertion is accepted only if all of these hold:

    1. its fields are complete, signed and match the return_to URL;
    2. the endpoint it speaks for, rebuilt from the assertion itself
       (or, for OpenID 1, from the token we put in return_to), is
       among those a fresh discovery on the claimed identifier finds;
    3. its signature verifies, with a stored association or by asking
       the provider;
    4. its nonce has not been seen before.
"""
import http.client
import logging
import urllib.error
import urllib.parse

from openid_rp import discover
from openid_rp import oidutil
from openid_rp import token
from openid_rp import urinorm
from openid_rp.associate import makeKVPost
from openid_rp.errors import AuthenticationError, DiscoveryMismatch, \
     ProtocolError, ReplayDetected, ServerError, SignatureInvalid
from openid_rp.message import Message, OPENID_NS, OPENID11_NS, OPENID2_NS, \
     OPENID1_NS, BARE_NS
from openid_rp.request import NONCE_ARG, RETURN_TO_NONCE_CONTEXT, \
     RETURN_TO_SIG_ARG, RETURN_TO_SIG_HANDLE_ARG, TOKEN_ARG, \
     returnToSignatureBase
from openid_rp.response import Response
from openid_rp.security import SecuritySettings
from openid_rp.store.nonce import split as splitNonce


def validate_fields(message):
    '''
    Checks for required fields and unsigned fields.
    Raises AuthenticationError if something's amiss.
    '''
    basic_fields = ['return_to', 'assoc_handle', 'sig', 'signed']
    basic_sig_fields = ['return_to', 'identity']

    require_fields = {
        OPENID2_NS: basic_fields + ['op_endpoint'],
        OPENID1_NS: basic_fields + ['identity'],
        OPENID11_NS: basic_fields + ['identity'],
        }

    require_sigs = {
        OPENID2_NS: basic_sig_fields + ['response_nonce',
                                        'claimed_id',
                                        'assoc_handle',
                                        'op_endpoint'],
        OPENID1_NS: basic_sig_fields,
        OPENID11_NS: basic_sig_fields,
        }

    missing = [
        f for f in require_fields[message.getOpenIDNamespace()]
        if not message.hasKey(OPENID_NS, f)
    ]
    if missing:
        raise AuthenticationError('Missing fields: %s' % ', '.join(missing), message)

    signed_list = message.getArg(OPENID_NS, 'signed', '').split(',')
    unsigned = [
        f for f in require_sigs[message.getOpenIDNamespace()]
        if message.hasKey(OPENID_NS, f) and f not in signed_list
    ]
    if unsigned:
        raise AuthenticationError('Unsigned fields: %s' % ', '.join(unsigned), message)


def validate_return_to(message, return_to):
    '''
    Check an OpenID message and its openid.return_to value
    against a return_to URL from an application.
    Raises AuthenticationError if they disagree.
    '''
    msg_return_to = message.getArg(OPENID_NS, 'return_to')
    parsed_url = urllib.parse.urlparse(msg_return_to)
    rt_query = parsed_url[4]
    parsed_args = urllib.parse.parse_qsl(rt_query)

    args = [
        key for key, value in parsed_args
        if value != message.getArg(BARE_NS, key, None)
    ]
    if args:
        raise AuthenticationError('Mismatched return_to args: %s' % ', '.join(args), message)

    try:
        app_parts = urllib.parse.urlparse(urinorm.urinorm(return_to))
        msg_parts = urllib.parse.urlparse(urinorm.urinorm(msg_return_to))
    except ValueError as why:
        raise AuthenticationError('Bad return_to: %s' % (why,), message)
    if app_parts[:3] != msg_parts[:3]:
        raise AuthenticationError('Wrong return_to: %s' % msg_return_to, message)


class AssertionVerifier(object):
    """Turns the query the user agent brings back into a
    L{Response<openid_rp.response.Response>}.

    @ivar store: association store, or None for stateless mode
    @ivar nonce_store: where used nonces are remembered
    @ivar secrets: the L{PrivateSecretManager<openid_rp.secret.PrivateSecretManager>}
        that signed our return_to URLs
    @ivar discover: the discovery callable, run afresh for every
        assertion
    @ivar token_key: key for the OpenID 1 endpoint tokens
    """

    def __init__(self, store, nonce_store, secrets, token_key,
                 security=None, discover=discover.discover):
        self.store = store
        self.nonce_store = nonce_store
        self.secrets = secrets
        self.token_key = token_key
        self.security = security or SecuritySettings()
        self.discover = discover

    def verify(self, query, current_url):
        """Check the provider's answer.

        @param query: all the query (or form) arguments of the request
            to the return_to URL
        @param current_url: the URL that request was made to
        @rtype: L{Response<openid_rp.response.Response>}
        """
        try:
            message = Message.fromPostArgs(query)
        except (ValueError, KeyError, TypeError) as why:
            logging.error('Malformed response: %s' % (why,))
            return Response.failed(ProtocolError('Malformed response: %s' % (why,)))

        mode = message.getArg(OPENID_NS, 'mode')
        if mode == 'cancel':
            logging.info('Authentication canceled by the user')
            return Response.canceled(message)
        if mode == 'setup_needed' and message.isOpenID2():
            return Response.setupRequired(message)
        if mode == 'id_res' and message.setup_url():
            return Response.setupRequired(message, message.setup_url())
        if mode == 'error':
            error = message.getArg(OPENID_NS, 'error', '<no error message supplied>')
            logging.error('Provider returned an error: %s' % (error,))
            return Response.failed(AuthenticationError(error, message), message)
        if mode != 'id_res':
            return Response.failed(
                AuthenticationError('Mode missing or invalid: %s' % (mode,), message), message)

        try:
            return self._verifyPositive(message, current_url)
        except (AuthenticationError, ProtocolError, discover.DiscoveryFailure) as why:
            logging.error('Rejecting assertion: %s' % (why,))
            return Response.failed(why, message)

    def _verifyPositive(self, message, current_url):
        validate_fields(message)
        validate_return_to(message, current_url)
        return_to_signed = self._checkReturnToSignature(message)

        if message.isOpenID1():
            endpoint = self._endpointFromToken(message)
        else:
            endpoint = self._endpointFromAssertion(message)

        self._checkPolicy(message, endpoint)
        self._checkDiscovery(message, endpoint)
        self._checkSignature(message, endpoint.server_url)
        self._checkNonce(message, endpoint, return_to_signed)

        logging.info('Authenticated %s with %s' % (endpoint.claimed_id, endpoint.server_url))
        return Response.authenticated(message, endpoint, return_to_signed)

    def _returnToArgs(self, message):
        return_to = message.getArg(OPENID_NS, 'return_to')
        return urllib.parse.parse_qsl(
            urllib.parse.urlparse(return_to).query, keep_blank_values=True)

    def _checkReturnToSignature(self, message):
        """Whether return_to carries our signature. A signature that
        is there but doesn't verify rejects the assertion.

        @raises SignatureInvalid: on a bad signature
        """
        args = self._returnToArgs(message)
        values = dict(args)
        handle = values.get(RETURN_TO_SIG_HANDLE_ARG)
        signature = values.get(RETURN_TO_SIG_ARG)
        if handle is None and signature is None:
            return False
        if handle is None or signature is None:
            raise SignatureInvalid('Incomplete return_to signature', message)

        try:
            signature = oidutil.fromBase64(signature)
        except ValueError:
            raise SignatureInvalid('Malformed return_to signature', message)

        if not self.secrets.verify(returnToSignatureBase(args), handle, signature):
            raise SignatureInvalid('return_to signature mismatch', message)
        return True

    def _endpointFromAssertion(self, message):
        claimed_id = message.getArg(OPENID2_NS, 'claimed_id')
        identity = message.getArg(OPENID2_NS, 'identity')
        if claimed_id is None or identity is None:
            raise AuthenticationError(
                'Assertions without an identifier are not supported', message)
        return discover.Service.fromAssertion(message)

    def _endpointFromToken(self, message):
        """Rebuild an OpenID 1 endpoint from the token we put in
        return_to before sending the user away."""
        serialized = dict(self._returnToArgs(message)).get(TOKEN_ARG)
        if serialized is None:
            raise AuthenticationError('Missing endpoint token in return_to', message)

        data = token.deserialize(serialized, self.token_key)
        if message.getOpenIDNamespace() == OPENID11_NS:
            type_uri = discover.OPENID_1_1_TYPE
        else:
            type_uri = discover.OPENID_1_0_TYPE
        endpoint = discover.Service(
            types=[type_uri],
            server_url=data.server_url,
            claimed_id=data.identity_url,
            local_id=data.local_id or None,
        )

        identity = message.getArg(OPENID_NS, 'identity')
        if identity != endpoint.identity():
            raise AuthenticationError('Bad identity: %s' % (identity,), message)
        return endpoint

    def _checkPolicy(self, message, endpoint):
        if not self.security.isVersionAllowed(endpoint.version):
            raise AuthenticationError(
                'Protocol version %s is below the minimum' % (endpoint.version,), message)
        if self.security.require_ssl:
            for url in [endpoint.server_url, endpoint.claimed_id]:
                if not url.lower().startswith('https:'):
                    raise AuthenticationError('Not an SSL URL: %s' % (url,), message)
        if self.security.reject_delegating_identifiers and endpoint.isDelegating():
            raise AuthenticationError(
                'Delegated identifier %s rejected' % (endpoint.claimed_id,), message)

    def _checkDiscovery(self, message, endpoint):
        """Rediscover the claimed identifier and require the asserted
        endpoint to be among the results.

        @raises DiscoveryMismatch: if it isn't, or discovery fails
        """
        try:
            discovered = self.discover(endpoint.claimed_id)
        except discover.DiscoveryFailure as why:
            raise DiscoveryMismatch(
                'Discovery on %s failed: %s' % (endpoint.claimed_id, why), message)

        if endpoint not in discovered:
            logging.error('Endpoint %s not found by discovery on %s'
                          % (endpoint, endpoint.claimed_id))
            raise DiscoveryMismatch(
                '%s is not an endpoint of %s' % (endpoint.server_url, endpoint.claimed_id),
                message)

    def _checkSignature(self, message, server_url):
        assoc_handle = message.getArg(OPENID_NS, 'assoc_handle')
        if self.store is None:
            assoc = None
        else:
            assoc = self.store.getAssociation(server_url, assoc_handle)

        if assoc:
            if assoc.expiresIn <= 0:
                raise SignatureInvalid(
                    'Association with %s expired' % server_url, message)
            if not self.security.isAssociationInPermittedRange(assoc.assoc_type):
                raise AuthenticationError(
                    'Association type %s is not permitted' % (assoc.assoc_type,), message)

            try:
                valid = assoc.checkMessageSignature(message)
            except ValueError as why:
                raise SignatureInvalid(str(why), message)
            if not valid:
                raise SignatureInvalid('Bad signature', message)

        elif self.security.require_association:
            raise AuthenticationError(
                'No association with %s and one is required' % (server_url,), message)

        else:
            # It's not an association we know about.  Stateless mode is our
            # only possible path for recovery.
            if not self._checkAuth(message, server_url):
                raise SignatureInvalid('Server denied check_authentication', message)

    def _checkNonce(self, message, endpoint, return_to_signed):
        if message.isOpenID1():
            if not self.security.protect_downlevel_replay:
                return
            nonce = dict(self._returnToArgs(message)).get(NONCE_ARG)
            context = RETURN_TO_NONCE_CONTEXT
            if nonce is not None and not return_to_signed:
                raise AuthenticationError('Unsigned nonce in return_to', message)
        else:
            nonce = message.getArg(OPENID2_NS, 'response_nonce')
            context = endpoint.server_url

        if nonce is None:
            raise AuthenticationError('Nonce missing from response', message)

        try:
            timestamp, salt = splitNonce(nonce)
        except ValueError as why:
            raise AuthenticationError('Malformed nonce: %s' % why, message)

        if not self.nonce_store.useNonce(context, timestamp, salt):
            logging.error('Replayed or stale nonce %r from %s' % (nonce, endpoint.server_url))
            raise ReplayDetected('Nonce already used or out of range', message)

    def _checkAuth(self, message, server_url):
        """Make a check_authentication request to verify this message.

        @returns: True if the request is valid.
        @rtype: bool
        """
        logging.info('Using OpenID check_authentication')
        request = self._createCheckAuthRequest(message)
        if request is None:
            return False
        try:
            response = makeKVPost(request, server_url)
        except (urllib.error.URLError, OSError, http.client.HTTPException,
                ServerError, ValueError) as e:
            logging.exception('check_authentication failed: %s' % e)
            return False
        else:
            return self._processCheckAuthResponse(response, server_url)

    def _createCheckAuthRequest(self, message):
        """Generate a check_authentication request message given an
        id_res message.
        """
        signed = message.getArg(OPENID_NS, 'signed')
        if signed:
            for k in signed.split(','):
                val = message.getAliasedArg(k)

                # Signed value is missing
                if val is None:
                    logging.info('Missing signed field %r' % (k,))
                    return None

        check_auth_message = message.copy()
        check_auth_message.setArg(OPENID_NS, 'mode', 'check_authentication')
        return check_auth_message

    def _processCheckAuthResponse(self, response, server_url):
        """Process the response message from a check_authentication
        request, invalidating associations if requested.
        """
        is_valid = response.getArg(OPENID_NS, 'is_valid', 'false')

        invalidate_handle = response.getArg(OPENID_NS, 'invalidate_handle')
        if invalidate_handle is not None:
            logging.info(
                'Received "invalidate_handle" from server %s' % (server_url,))
            if self.store is None:
                logging.error('Unexpectedly got invalidate_handle without '
                              'a store!')
            else:
                self.store.removeAssociation(server_url, invalidate_handle)

        if is_valid == 'true':
            return True
        else:
            logging.error('Server responds that checkAuth call is not valid')
            return False
