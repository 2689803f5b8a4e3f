import unittest
import urllib.parse
from unittest import mock

from openid_rp import ax, sreg
from openid_rp.consumer import RelyingParty
from openid_rp.discover import DiscoveryFailure, Service, OPENID_IDP_2_0_TYPE, OPENID_2_0_TYPE
from openid_rp.errors import DiscoveryMismatch, ProtocolError, ReplayDetected
from openid_rp.message import Message, OPENID_NS, OPENID2_NS, IDENTIFIER_SELECT
from openid_rp.request import AssociationPreference, NONCE_ARG, RETURN_TO_SIG_ARG, \
     RETURN_TO_SIG_HANDLE_ARG, TOKEN_ARG, USER_SUPPLIED_ID_ARG
from openid_rp.response import Status
from openid_rp.security import SecuritySettings
from openid_rp.store.interface import AssociationStore
from openid_rp.store.memstore import MemoryStore
from . import support

SERVER_URL = 'https://op.example/auth'
REALM = 'https://rp.example/'
RETURN_TO = 'https://rp.example/return'

PAGES = {
    'http://alice.example/': (
        '<html><head>'
        '<link rel="openid2.provider" href="https://op.example/auth">'
        '</head><body>Alice</body></html>'),
    'http://bob.example/': (
        '<html><head>'
        '<link rel="openid.server" href="https://op.example/auth">'
        '<link rel="openid.delegate" href="https://op.example/u/bob">'
        '</head><body>Bob</body></html>'),
    'http://carol.example/': (
        '<html><head>'
        '<link rel="openid2.provider openid.server" href="https://op.example/auth">'
        '</head><body>Carol</body></html>'),
    'http://nobody.example/': '<html><head></head><body>No OpenID</body></html>',
}


def parseRedirect(url):
    """The OpenID message in a redirect URL."""
    query = urllib.parse.urlparse(url).query
    return Message.fromPostArgs(dict(urllib.parse.parse_qsl(query)))


def returnToArgs(message):
    return_to = message.getArg(OPENID_NS, 'return_to')
    return dict(urllib.parse.parse_qsl(urllib.parse.urlparse(return_to).query))


class RelyingPartyTest(support.CatchLogs, unittest.TestCase):
    def setUp(self):
        support.CatchLogs.setUp(self)
        self.provider = support.FakeProvider(SERVER_URL, PAGES)
        patcher = mock.patch('openid_rp.fetchers.fetch', self.provider.fetch)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.store = MemoryStore()
        self.rp = RelyingParty(self.store)

    def redirect(self, identifier, rp=None):
        rp = rp or self.rp
        request = rp.begin(identifier, REALM, RETURN_TO).build()
        return rp.redirectURL(request)


class ConstructTest(unittest.TestCase):
    def test_store_is_nonce_store(self):
        store = MemoryStore()
        rp = RelyingParty(store)
        self.assertIs(rp.nonce_store, store)
        self.assertIs(rp.associations.store, store)

    def test_no_store(self):
        rp = RelyingParty(None)
        self.assertIsNone(rp.associations.store)
        self.assertIsInstance(rp.nonce_store, MemoryStore)
        self.assertIs(rp.secrets.store, rp.nonce_store)

    def test_store_without_nonces(self):
        self.assertRaises(ValueError, RelyingParty, AssociationStore())

    def test_separate_nonce_store(self):
        nonces = MemoryStore()
        rp = RelyingParty(AssociationStore(), nonce_store=nonces)
        self.assertIs(rp.nonce_store, nonces)

    def test_token_key(self):
        self.assertEqual(RelyingParty(None, token_key=b'k' * 32).token_key, b'k' * 32)
        self.assertEqual(len(RelyingParty(None).token_key), 32)


class CreateRequestsTest(RelyingPartyTest):
    def test_begin(self):
        builder = self.rp.begin('alice.example', REALM, RETURN_TO)
        self.assertEqual(builder.endpoint.claimed_id, 'http://alice.example/')
        self.assertEqual(builder.endpoint.server_url, SERVER_URL)
        self.assertEqual(builder.endpoint.user_supplied_id, 'alice.example')
        self.assertEqual(builder.association_preference, AssociationPreference.IF_POSSIBLE)
        self.assertEqual(self.store.getAssociation(SERVER_URL).handle, 'H1')

    def test_both_versions(self):
        builders = self.rp.createRequests('carol.example', REALM, RETURN_TO)
        self.assertEqual([b.endpoint.version for b in builders], [(2, 0), (1, 1)])

    def test_predicate(self):
        builders = self.rp.createRequests(
            'carol.example', REALM, RETURN_TO, lambda e: e.compat_mode())
        self.assertEqual([b.endpoint.version for b in builders], [(1, 1)])

    def test_no_endpoints(self):
        self.assertEqual(self.rp.createRequests('nobody.example', REALM, RETURN_TO), [])
        self.assertRaises(DiscoveryFailure, self.rp.begin, 'nobody.example', REALM, RETURN_TO)

    def test_discovery_failure(self):
        self.assertRaises(DiscoveryFailure, self.rp.begin, 'missing.example', REALM, RETURN_TO)

    def test_discovery_failure_no_requests(self):
        self.assertEqual(self.rp.createRequests('missing.example', REALM, RETURN_TO), [])
        messages = [r['msg'] for r in self.messages]
        self.assertTrue(
            any(m.startswith('Discovery on missing.example failed') for m in messages), messages)

    def test_realm_checked_before_fetching(self):
        discover = mock.Mock(side_effect=AssertionError('discovery should not run'))
        rp = RelyingParty(self.store, discover=discover)
        with mock.patch('openid_rp.fetchers.fetch') as fetch:
            self.assertRaises(ProtocolError, rp.createRequests,
                              'alice.example', 'https://evil.example/', RETURN_TO)
            self.assertRaises(ProtocolError, rp.begin, 'alice.example', 'not a realm', RETURN_TO)
            self.assertRaises(ProtocolError, rp.begin, 'alice.example', REALM, '')
        self.assertFalse(discover.called)
        self.assertFalse(fetch.called)
        self.assertEqual(self.provider.requests, [])
        self.assertIsNone(self.store.getAssociation(SERVER_URL))

    def test_op_identifier_exclusive(self):
        endpoints = [
            Service([OPENID_2_0_TYPE], SERVER_URL, 'https://op.example/'),
            Service([OPENID_IDP_2_0_TYPE], SERVER_URL),
        ]
        rp = RelyingParty(self.store, discover=lambda identifier: endpoints)
        builders = rp.createRequests('op.example', REALM, RETURN_TO)
        self.assertEqual(len(builders), 1)
        self.assertTrue(builders[0].endpoint.is_op_identifier())
        self.assertEqual(builders[0].endpoint.user_supplied_id, 'op.example')

    def test_association_refused(self):
        self.provider.associate_errors.append({'ns': OPENID2_NS, 'error': 'no'})
        builders = self.rp.createRequests('alice.example', REALM, RETURN_TO)
        self.assertEqual(len(builders), 1)
        self.assertEqual(builders[0].association_preference,
                         AssociationPreference.IF_ALREADY_ESTABLISHED)

        url = self.rp.redirectURL(builders[0].build())
        self.assertEqual(len(self.provider.requests), 1)
        message = parseRedirect(url)
        self.assertFalse(message.hasKey(OPENID_NS, 'assoc_handle'))

    def test_association_required(self):
        self.provider.associate_errors.append({'ns': OPENID2_NS, 'error': 'no'})
        rp = RelyingParty(self.store, security=SecuritySettings(require_association=True))
        self.assertEqual(rp.createRequests('alice.example', REALM, RETURN_TO), [])

    def test_no_store_no_association(self):
        rp = RelyingParty(None)
        builders = rp.createRequests('alice.example', REALM, RETURN_TO)
        self.assertEqual(len(builders), 1)
        self.assertEqual(builders[0].association_preference, AssociationPreference.IF_POSSIBLE)
        self.assertEqual(self.provider.requests, [])


class RedirectTest(RelyingPartyTest):
    def test_openid2(self):
        message = parseRedirect(self.redirect('alice.example'))
        self.assertTrue(message.isOpenID2())
        self.assertEqual(message.getArg(OPENID_NS, 'mode'), 'checkid_setup')
        self.assertEqual(message.getArg(OPENID_NS, 'assoc_handle'), 'H1')
        self.assertEqual(message.getArg(OPENID_NS, 'claimed_id'), 'http://alice.example/')
        self.assertEqual(message.getArg(OPENID_NS, 'identity'), 'http://alice.example/')
        self.assertEqual(message.getArg(OPENID_NS, 'realm'), REALM)

        args = returnToArgs(message)
        self.assertEqual(args[USER_SUPPLIED_ID_ARG], 'alice.example')
        # an association and nothing to protect: no return_to signature
        self.assertNotIn(RETURN_TO_SIG_ARG, args)
        self.assertNotIn(TOKEN_ARG, args)

    def test_openid1(self):
        message = parseRedirect(self.redirect('bob.example'))
        self.assertTrue(message.isOpenID1())
        self.assertEqual(message.getArg(OPENID_NS, 'identity'), 'https://op.example/u/bob')
        self.assertEqual(message.getArg(OPENID_NS, 'trust_root'), REALM)
        self.assertEqual(self.store.getAssociation(SERVER_URL).assoc_type, 'HMAC-SHA1')

        args = returnToArgs(message)
        self.assertIn(TOKEN_ARG, args)
        self.assertIn(NONCE_ARG, args)
        self.assertIn(RETURN_TO_SIG_HANDLE_ARG, args)
        self.assertIn(RETURN_TO_SIG_ARG, args)

    def test_op_identifier(self):
        endpoints = [Service([OPENID_IDP_2_0_TYPE], SERVER_URL)]
        rp = RelyingParty(self.store, discover=lambda identifier: endpoints)
        message = parseRedirect(self.redirect('op.example', rp))
        self.assertEqual(message.getArg(OPENID_NS, 'identity'), IDENTIFIER_SELECT)
        self.assertEqual(message.getArg(OPENID_NS, 'claimed_id'), IDENTIFIER_SELECT)

    def test_callback_arguments(self):
        request = (self.rp.begin('alice.example', REALM, RETURN_TO + '?lang=en')
                   .addCallbackArgument('next', '/home')
                   .setUntrustedCallbackArgument('theme', 'dark')
                   .addExtension(sreg.SRegRequest(required=['email']))
                   .build())
        message = parseRedirect(self.rp.redirectURL(request))
        args = returnToArgs(message)
        self.assertEqual(args['lang'], 'en')
        self.assertEqual(args['next'], '/home')
        self.assertEqual(args['theme'], 'dark')
        self.assertIn(RETURN_TO_SIG_ARG, args)
        self.assertEqual(message.getArg(sreg.ns_uri, 'required'), 'email')

    def test_never_associate(self):
        request = (self.rp.begin('alice.example', REALM, RETURN_TO)
                   .setAssociationPreference(AssociationPreference.NEVER)
                   .build())
        message = parseRedirect(self.rp.redirectURL(request))
        self.assertFalse(message.hasKey(OPENID_NS, 'assoc_handle'))
        self.assertIn(RETURN_TO_SIG_ARG, returnToArgs(message))

    def test_bad_realm(self):
        self.assertRaises(ProtocolError, self.rp.begin,
                          'alice.example', 'https://elsewhere.example/', RETURN_TO)

    def test_bad_realm_on_builder(self):
        builder = self.rp.begin('alice.example', REALM, RETURN_TO)
        builder.realm = 'https://elsewhere.example/'
        self.assertRaises(ProtocolError, builder.build)


class CompleteTest(RelyingPartyTest):
    def test_openid2(self):
        url = self.redirect('alice.example')
        query = self.provider.positiveAssertion(url)
        response = self.rp.complete(query, RETURN_TO)
        self.assertEqual(response.status, Status.AUTHENTICATED, response.cause)
        self.assertEqual(response.claimed_id, 'http://alice.example/')
        self.assertEqual(response.user_supplied_id, 'alice.example')
        # the signature was checked with the association, not by the provider
        self.assertEqual(
            [m.getArg(OPENID_NS, 'mode') for m in self.provider.requests], ['associate'])

    def test_match(self):
        query = self.provider.positiveAssertion(self.redirect('alice.example'))
        response = self.rp.complete(query, RETURN_TO)
        result = response.match(
            authenticated=lambda r: r.claimed_id,
            canceled=lambda r: 'canceled',
            setup_required=lambda r: 'setup',
            failed=lambda r: 'failed',
        )
        self.assertEqual(result, 'http://alice.example/')

    def test_forged_op_endpoint(self):
        url = self.redirect('alice.example')
        query = self.provider.positiveAssertion(url, op_endpoint='https://evil.example/auth')
        response = self.rp.complete(query, RETURN_TO)
        self.assertEqual(response.status, Status.FAILED)
        self.assertIsInstance(response.cause, DiscoveryMismatch)

    def test_forged_claimed_id(self):
        url = self.redirect('alice.example')
        query = self.provider.positiveAssertion(
            url, claimed_id='http://bob.example/', identity='http://bob.example/')
        response = self.rp.complete(query, RETURN_TO)
        self.assertIsInstance(response.cause, DiscoveryMismatch)

    def test_replay(self):
        query = self.provider.positiveAssertion(self.redirect('alice.example'))
        self.assertEqual(self.rp.complete(query, RETURN_TO).status, Status.AUTHENTICATED)
        response = self.rp.complete(query, RETURN_TO)
        self.assertEqual(response.status, Status.FAILED)
        self.assertIsInstance(response.cause, ReplayDetected)

    def test_openid1(self):
        url = self.redirect('bob.example')
        query = self.provider.positiveAssertion(url)
        response = self.rp.complete(query, RETURN_TO)
        self.assertEqual(response.status, Status.AUTHENTICATED, response.cause)
        self.assertEqual(response.claimed_id, 'http://bob.example/')
        self.assertEqual(response.local_id, 'https://op.example/u/bob')

    def test_openid1_replay(self):
        query = self.provider.positiveAssertion(self.redirect('bob.example'))
        self.assertEqual(self.rp.complete(query, RETURN_TO).status, Status.AUTHENTICATED)
        self.assertIsInstance(self.rp.complete(query, RETURN_TO).cause, ReplayDetected)

    def test_stateless(self):
        rp = RelyingParty(None)
        url = self.redirect('alice.example', rp)
        query = self.provider.positiveAssertion(url)
        self.assertEqual(query['openid.assoc_handle'], 'stateless')

        response = rp.complete(query, RETURN_TO)
        self.assertEqual(response.status, Status.AUTHENTICATED, response.cause)
        self.assertTrue(response.return_to_signed)
        self.assertEqual(
            [m.getArg(OPENID_NS, 'mode') for m in self.provider.requests],
            ['check_authentication'])

    def test_stateless_openid1(self):
        rp = RelyingParty(None)
        query = self.provider.positiveAssertion(self.redirect('bob.example', rp))
        response = rp.complete(query, RETURN_TO)
        self.assertEqual(response.status, Status.AUTHENTICATED, response.cause)
        self.assertEqual(response.claimed_id, 'http://bob.example/')

    def test_callback_arguments(self):
        request = (self.rp.begin('alice.example', REALM, RETURN_TO)
                   .addCallbackArgument('next', '/home')
                   .setUntrustedCallbackArgument('theme', 'dark')
                   .build())
        query = self.provider.positiveAssertion(self.rp.redirectURL(request))
        response = self.rp.complete(query, RETURN_TO)
        self.assertEqual(response.status, Status.AUTHENTICATED, response.cause)
        self.assertEqual(response.getCallbackArguments(), {'next': '/home', 'theme': 'dark'})
        self.assertEqual(response.getUntrustedCallbackArgument('theme'), 'dark')

    def test_sreg(self):
        request = (self.rp.begin('alice.example', REALM, RETURN_TO)
                   .addExtension(sreg.SRegRequest(required=['email']))
                   .build())
        url = self.rp.redirectURL(request)
        query = self.provider.positiveAssertion(url, extensions={
            sreg.ns_uri_1_1: {'email': 'alice@example.com'},
        })
        response = self.rp.complete(query, RETURN_TO)
        self.assertEqual(response.status, Status.AUTHENTICATED, response.cause)
        profile = sreg.SRegResponse.fromSuccessResponse(response)
        self.assertEqual(profile['email'], 'alice@example.com')

    def test_ax_fetch(self):
        email = 'http://axschema.org/contact/email'
        fetch_request = ax.FetchRequest()
        fetch_request.add(ax.AttrInfo(email, alias='email', required=True))
        request = self.rp.begin('alice.example', REALM, RETURN_TO).addExtension(fetch_request).build()
        url = self.rp.redirectURL(request)
        self.assertEqual(parseRedirect(url).getArg(ax.ns_uri, 'required'), 'email')

        fetched = ax.FetchResponse()
        fetched.addValue(email, 'alice@example.com')
        query = self.provider.positiveAssertion(url, extensions={
            ax.ns_uri: fetched.getExtensionArgs(),
        })
        response = self.rp.complete(query, RETURN_TO)
        self.assertEqual(response.status, Status.AUTHENTICATED, response.cause)
        self.assertEqual(
            ax.FetchResponse.fromSuccessResponse(response).getSingle(email), 'alice@example.com')

    def test_cancel(self):
        response = self.rp.complete({'openid.ns': OPENID2_NS, 'openid.mode': 'cancel'}, RETURN_TO)
        self.assertEqual(response.status, Status.CANCELED)

    def test_setup_needed(self):
        url = self.redirect('alice.example')
        return_to = parseRedirect(url).getArg(OPENID_NS, 'return_to')
        query = dict(urllib.parse.parse_qsl(urllib.parse.urlparse(return_to).query))
        query.update({'openid.ns': OPENID2_NS, 'openid.mode': 'setup_needed'})
        response = self.rp.complete(query, RETURN_TO)
        self.assertEqual(response.status, Status.SETUP_REQUIRED)
        self.assertEqual(response.user_supplied_id, 'alice.example')


if __name__ == '__main__':
    unittest.main()
