'''
Provider endpoints and the default way to discover them from an
identifier: OpenID link relations in the HTML page the identifier
URL serves.

Any callable with the signature of L{discover} may be given to
L{RelyingParty<openid_rp.consumer.RelyingParty>} instead, e.g. one
that also understands XRDS documents.
'''
import http.client
import logging
import urllib.error
import urllib.parse

import html5lib

from openid_rp import fetchers
from openid_rp import urinorm
from openid_rp.message import OPENID1_NS, OPENID2_NS

OPENID_IDP_2_0_TYPE = 'http://specs.openid.net/auth/2.0/server'
OPENID_2_0_TYPE = 'http://specs.openid.net/auth/2.0/signon'
OPENID_1_1_TYPE = 'http://openid.net/signon/1.1'
OPENID_1_0_TYPE = 'http://openid.net/signon/1.0'

# OpenID service type URIs, most preferred first, with the protocol
# version each of them implies.
SERVICE_TYPES = [
    (OPENID_IDP_2_0_TYPE, (2, 0)),
    (OPENID_2_0_TYPE, (2, 0)),
    (OPENID_1_1_TYPE, (1, 1)),
    (OPENID_1_0_TYPE, (1, 0)),
]

XHTML = '{http://www.w3.org/1999/xhtml}'


class DiscoveryFailure(Exception):
    pass


class Service(object):
    """A provider endpoint found by discovery or reconstructed from an
    assertion. Treat instances as immutable.

    Two endpoints are equal when their claimed identifier, provider
    URL, provider-local identifier and major protocol version agree.
    Priorities, type URIs and the user supplied identifier don't take
    part: they don't survive the round trip through the provider.

    @ivar claimed_id: the identifier the user claims, None for an OP
        Identifier endpoint
    @ivar user_supplied_id: what the user typed in
    @ivar local_id: the provider-local (delegate) identifier, if any
    @ivar server_url: the provider endpoint URL
    @ivar types: service type URIs
    @ivar service_priority: priority of the service, lower is better
    @ivar uri_priority: priority of the URI within the service
    """

    def __init__(self, types=None, server_url=None, claimed_id=None, local_id=None,
                 user_supplied_id=None, service_priority=None, uri_priority=None):
        self.types = tuple(types) if types is not None else (OPENID_2_0_TYPE,)
        self.server_url = server_url
        self.claimed_id = claimed_id
        self.local_id = local_id
        self.user_supplied_id = user_supplied_id
        self.service_priority = service_priority
        self.uri_priority = uri_priority

    @classmethod
    def fromAssertion(cls, message):
        '''
        Reconstruct the endpoint an OpenID 2 positive assertion speaks
        for, using nothing but the asserted fields.
        '''
        claimed_id = message.getArg(OPENID2_NS, 'claimed_id')
        if claimed_id:
            claimed_id = urllib.parse.urldefrag(claimed_id)[0]
        return cls(
            types=[OPENID_2_0_TYPE],
            server_url=message.getArg(OPENID2_NS, 'op_endpoint'),
            claimed_id=claimed_id,
            local_id=message.getArg(OPENID2_NS, 'identity'),
        )

    def copy(self, **changes):
        attrs = dict(self.__dict__, **changes)
        return self.__class__(**attrs)

    @property
    def version(self):
        '''
        Protocol version as (major, minor), or None when none of the
        types is an OpenID one.
        '''
        for type_uri, version in SERVICE_TYPES:
            if type_uri in self.types:
                return version
        return None

    def ns(self):
        return OPENID1_NS if self.compat_mode() else OPENID2_NS

    def compat_mode(self):
        return not (OPENID_IDP_2_0_TYPE in self.types or OPENID_2_0_TYPE in self.types)

    def is_op_identifier(self):
        return OPENID_IDP_2_0_TYPE in self.types

    def usesExtension(self, extension_uri):
        return extension_uri in self.types

    def isDelegating(self):
        return bool(self.local_id) and self.local_id != self.claimed_id

    def identity(self):
        '''
        Return the identifier that should be sent as the
        openid.identity parameter to the server.
        '''
        return self.local_id or self.claimed_id

    def _key(self):
        version = self.version
        return (
            self.claimed_id,
            self.server_url,
            self.identity(),
            version[0] if version else None,
        )

    def __eq__(self, other):
        return isinstance(other, Service) and self._key() == other._key()

    def __ne__(self, other):
        return not (self == other)

    def __hash__(self):
        return hash(self._key())

    def __str__(self):
        return '<%s server_url=%s claimed_id=%s local_id=%s>' % (
            self.__class__.__name__,
            self.server_url,
            self.claimed_id,
            self.local_id,
        )

    __repr__ = __str__


def parse_html(url, html, user_supplied_id=None):
    root = html5lib.parse(html)
    links = root.findall(XHTML + 'head/' + XHTML + 'link')
    hrefs = {rel: l.get('href') for l in links for rel in l.get('rel', '').split()}

    link_types = [
        (OPENID_2_0_TYPE, 'openid2.provider', 'openid2.local_id'),
        (OPENID_1_1_TYPE, 'openid.server', 'openid.delegate'),
    ]

    return [
        Service([type_uri], hrefs[op_endpoint_rel], url, hrefs.get(local_id_rel),
                user_supplied_id=user_supplied_id)
        for type_uri, op_endpoint_rel, local_id_rel in link_types
        if hrefs.get(op_endpoint_rel)
    ]


def normalizeURL(identifier):
    '''
    Turn what a user typed into an identifier URL: add a missing
    scheme, normalize and drop the fragment.
    '''
    parsed = urllib.parse.urlparse(identifier)
    if not parsed.scheme or not parsed.netloc:
        # checking both scheme and netloc as things like 'server:80/' put 'server' in scheme
        identifier = 'http://' + identifier
    try:
        url = urinorm.urinorm(identifier)
    except ValueError as why:
        raise DiscoveryFailure('Normalizing identifier %r: %s' % (identifier, why))
    return urllib.parse.urldefrag(url)[0]


def discover(identifier):
    '''
    Find the OpenID endpoints of an identifier.

    The claimed identifier is the URL after redirects. Returns a
    possibly empty list of L{Service}; raises L{DiscoveryFailure} when
    the identifier page can not be fetched.
    '''
    url = normalizeURL(identifier)
    try:
        response = fetchers.fetch(url, headers={'Accept': 'text/html, application/xhtml+xml'})
        body = response.read()
    except (urllib.error.URLError, OSError, http.client.HTTPException) as why:
        logging.info('Fetching %s for discovery failed: %s', url, why)
        raise DiscoveryFailure('Fetching %s failed: %s' % (url, why))

    claimed_id = urllib.parse.urldefrag(response.url or url)[0]
    services = parse_html(claimed_id, body, user_supplied_id=identifier)
    logging.info('Discovered %d OpenID endpoint(s) for %s', len(services), identifier)
    return services
