import urllib.request
import urllib.error
import urllib.parse
import io
import os
from logging.handlers import BufferingHandler
import logging

from openid_rp import cryptutil, kvform, oidutil
from openid_rp.association import Association, getSecretSize
from openid_rp.dh import DiffieHellman
from openid_rp.message import Message, OPENID_NS, OPENID2_NS
from openid_rp.store.nonce import mkNonce


DATAPATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'data')


class TestHandler(BufferingHandler):
    def __init__(self, messages):
        BufferingHandler.__init__(self, 0)
        self.messages = messages

    def shouldFlush(self):
        return False

    def emit(self, record):
        self.messages.append(record.__dict__)


class OpenIDTestMixin(object):
    def failUnlessOpenIDValueEquals(self, msg, key, expected, ns=None):
        if ns is None:
            ns = OPENID_NS

        actual = msg.getArg(ns, key)
        error_format = 'Wrong value for openid.%s: expected=%s, actual=%s'
        error_message = error_format % (key, expected, actual)
        self.assertEqual(expected, actual, error_message)

    def failIfOpenIDKeyExists(self, msg, key, ns=None):
        if ns is None:
            ns = OPENID_NS

        actual = msg.getArg(ns, key)
        error_message = 'openid.%s unexpectedly present: %s' % (key, actual)
        self.assertFalse(actual is not None, error_message)


class CatchLogs(object):
    def setUp(self):
        self.messages = []
        root_logger = logging.getLogger()
        self.old_log_level = root_logger.getEffectiveLevel()
        root_logger.setLevel(logging.DEBUG)

        self.handler = TestHandler(self.messages)
        formatter = logging.Formatter("%(message)s [%(asctime)s - %(name)s - %(levelname)s]")
        self.handler.setFormatter(formatter)
        root_logger.addHandler(self.handler)

    def tearDown(self):
        root_logger = logging.getLogger()
        root_logger.removeHandler(self.handler)
        root_logger.setLevel(self.old_log_level)

    def failUnlessLogMatches(self, *prefixes):
        """
        Check that the log messages contained in self.messages have
        prefixes in *prefixes.  Raise AssertionError if not, or if the
        number of prefixes is different than the number of log
        messages.
        """
        messages = [r['msg'] for r in self.messages]
        assert len(prefixes) == len(messages), \
               "Expected log prefixes %r, got %r" % (prefixes,
                                                     messages)

        for prefix, message in zip(prefixes, messages):
            assert message.startswith(prefix), \
                   "Expected log prefixes %r, got %r" % (prefixes,
                                                         messages)

    def failUnlessLogEmpty(self):
        self.failUnlessLogMatches()


class HTTPResponse:
    def __init__(self, url, status, headers=None, body=None):
        self.url = url
        self.status = status
        self.headers = headers or {}
        self._body = io.BytesIO(body)

    def info(self):
        return self.headers

    def read(self, *args):
        return self._body.read(*args)

    def getheader(self, name):
        return {k.lower(): v for k, v in self.headers.items()}.get(name.lower())


def gentests(cls):
    '''
    TestCase class decorator for data-driven tests.

    Reads a list of (name, args) pairs from cls.data and generates a separate
    test method named 'test_<name>' for each pair. The test method would call
    the method '_test' defined in a class to perform actual testing, passing it
    the args.
    '''
    for name, args in cls.data:
        def g(*args):
            def test_method(self):
                self._test(*args)
            return test_method
        method = g(*args)
        method.__name__ = 'test_' + name
        setattr(cls, method.__name__, method)
    return cls


def urlopen(request, data=None, timeout=None):
    if isinstance(request, str):
        request = urllib.request.Request(request)
    # track the last call arguments
    urlopen.request = request
    urlopen.data = data
    urlopen.timeout = timeout

    url = request.get_full_url()
    parts = urllib.parse.urlparse(url)
    if parts.netloc.split(':')[0] != 'unittest':
        raise urllib.error.URLError('Wrong host: %s' % parts.netloc)
    path = parts.path.lstrip('/')
    if path.isdigit():
        status = int(path)
        if 300 <= status < 400:
            raise urllib.error.HTTPError(url, 400, 'Can\'t return 3xx status', {}, io.BytesIO())
        if 400 <= status:
            raise urllib.error.HTTPError(url, status, 'Requested status: %s' % status, {}, io.BytesIO())
        body = b'OK'
    else:
        try:
            status = 200
            with open(os.path.join(DATAPATH, path), 'rb') as f:
                body = f.read()
        except FileNotFoundError:
            raise urllib.error.HTTPError(url, 404, '%s not found' % path, {}, io.BytesIO())

    headers = {
        'Server': 'Urlopen-Mock',
        'Date': 'Mon, 21 Jul 2014 19:52:42 GMT',
        'Content-type': 'text/plain',
        'Content-length': len(body),
    }
    query = urllib.parse.parse_qs(parts.query)
    redirect = query.get('redirect')
    if redirect:
        url = redirect[0]
    return HTTPResponse(url, status, headers, body)


class FakeProvider(object):
    '''
    A provider and the identity pages it serves, answering in place of
    L{openid_rp.fetchers.fetch}::

        with mock.patch('openid_rp.fetchers.fetch', provider.fetch):
            ...

    GET requests return the HTML in C{pages}, POSTs to C{server_url}
    are handled as direct requests: C{associate} and
    C{check_authentication}.
    '''
    def __init__(self, server_url='https://op.example/auth', pages=None,
                 assoc_handle='H1', lifetime=3600):
        self.server_url = server_url
        self.pages = pages or {}
        self.assoc_handle = assoc_handle
        self.lifetime = lifetime
        self.associations = {}
        self.requests = []
        # error args for the next associate request(s), answered with 400
        self.associate_errors = []
        self.check_auth_valid = True
        self.invalidate_handle = None

    def fetch(self, url, body=None, headers=None, timeout=None):
        if body is None:
            page = self.pages.get(url)
            if page is None:
                raise urllib.error.HTTPError(url, 404, 'Not found', {}, io.BytesIO())
            return HTTPResponse(url, 200, {'Content-type': 'text/html'}, page.encode('utf-8'))

        if url != self.server_url:
            raise urllib.error.URLError('Unknown direct request URL: %s' % url)

        message = Message.fromPostArgs(dict(urllib.parse.parse_qsl(body.decode('utf-8'))))
        self.requests.append(message)
        mode = message.getArg(OPENID_NS, 'mode')
        if mode == 'associate':
            if self.associate_errors:
                error = self.associate_errors.pop(0)
                raise urllib.error.HTTPError(
                    url, 400, 'Bad request', {}, io.BytesIO(kvform.dictToKV(error).encode('utf-8')))
            reply = self.associate(message)
        elif mode == 'check_authentication':
            reply = self.checkAuth(message)
        else:
            raise urllib.error.HTTPError(url, 400, 'Bad request', {}, io.BytesIO(b'error:bad mode\n'))
        return HTTPResponse(url, 200, {}, kvform.dictToKV(reply).encode('utf-8'))

    def associate(self, message):
        assoc_type = message.getArg(OPENID_NS, 'assoc_type')
        session_type = message.getArg(OPENID_NS, 'session_type', 'no-encryption')
        secret = cryptutil.randomBytes(getSecretSize(assoc_type))
        assoc = Association.fromExpiresIn(self.lifetime, self.assoc_handle, secret, assoc_type)
        self.associations[assoc.handle] = assoc

        reply = {
            'assoc_type': assoc_type,
            'assoc_handle': assoc.handle,
            'expires_in': str(self.lifetime),
        }
        if message.isOpenID2():
            reply['ns'] = OPENID2_NS
            reply['session_type'] = session_type

        if session_type == 'no-encryption':
            reply['mac_key'] = oidutil.toBase64(secret)
        else:
            if message.isOpenID1():
                reply['session_type'] = session_type
            hash_func = cryptutil.sha1 if session_type == 'DH-SHA1' else cryptutil.sha256
            consumer_public = cryptutil.base64ToLong(message.getArg(OPENID_NS, 'dh_consumer_public'))
            server_dh = DiffieHellman.fromDefaults()
            reply['dh_server_public'] = cryptutil.longToBase64(server_dh.public)
            reply['enc_mac_key'] = oidutil.toBase64(
                server_dh.xorSecret(consumer_public, secret, hash_func))
        return reply

    def checkAuth(self, message):
        reply = {'is_valid': 'true' if self.check_auth_valid else 'false'}
        if message.isOpenID2():
            reply['ns'] = OPENID2_NS
        if self.invalidate_handle:
            reply['invalidate_handle'] = self.invalidate_handle
        return reply

    def positiveAssertion(self, redirect_url, claimed_id=None, identity=None,
                          op_endpoint=None, assoc_handle=None, extensions=None):
        '''
        The query the user agent brings back to return_to after a
        positive assertion for the request in C{redirect_url}.

        Signed with the association named by C{assoc_handle}, or with
        an association we keep to ourselves (stateless mode) when
        there is none. C{extensions} maps namespace URIs to
        the arguments to add in them.
        '''
        request = Message.fromPostArgs(
            dict(urllib.parse.parse_qsl(urllib.parse.urlparse(redirect_url).query)))
        return_to = request.getArg(OPENID_NS, 'return_to')

        response = Message(request.getOpenIDNamespace())
        response.setArg(OPENID_NS, 'mode', 'id_res')
        response.setArg(OPENID_NS, 'return_to', return_to)
        response.setArg(OPENID_NS, 'identity', identity or request.getArg(OPENID_NS, 'identity'))
        if response.isOpenID2():
            response.setArg(OPENID2_NS, 'claimed_id',
                            claimed_id or request.getArg(OPENID2_NS, 'claimed_id'))
            response.setArg(OPENID2_NS, 'op_endpoint', op_endpoint or self.server_url)
            response.setArg(OPENID2_NS, 'response_nonce', mkNonce())
        for ns_uri, args in (extensions or {}).items():
            response.updateArgs(ns_uri, args)

        if assoc_handle is None:
            assoc_handle = request.getArg(OPENID_NS, 'assoc_handle')
        assoc = self.associations.get(assoc_handle)
        if assoc is None:
            assoc = Association.fromExpiresIn(
                self.lifetime, 'stateless', cryptutil.randomBytes(20), 'HMAC-SHA1')
        signed = assoc.signMessage(response)

        query = dict(urllib.parse.parse_qsl(urllib.parse.urlparse(return_to).query))
        query.update(signed.toPostArgs())
        return query
