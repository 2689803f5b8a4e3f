"""
Realms (trust roots in OpenID 1): the URL pattern that identifies a
relying party to the user and the provider, and which every
return_to URL must fall under.
"""
import urllib.parse

PROTOCOLS = ('http', 'https')


def _parseURL(url):
    proto, netloc, path, params, query, frag = urllib.parse.urlparse(url)
    path = urllib.parse.urlunparse(('', '', path, params, query, frag))

    host, _, port = netloc.partition(':')
    if ':' in port:
        return None

    return proto, host.lower(), port, path or '/'


class Realm(object):
    """
    A parsed realm. Build one with L{parse} and test URLs against it
    with L{contains}.
    """

    def __init__(self, unparsed, proto, wildcard, host, port, path):
        self.unparsed = unparsed
        self.proto = proto
        self.wildcard = wildcard
        self.host = host
        self.port = port
        self.path = path

    @classmethod
    def parse(cls, realm):
        """
        @return: a L{Realm}, or None if the string is not a valid realm
        @rtype: L{Realm} or None
        """
        if not isinstance(realm, str):
            return None

        url_parts = _parseURL(realm)
        if url_parts is None:
            return None

        proto, host, port, path = url_parts
        if proto not in PROTOCOLS or not host or '#' in path:
            return None

        # a wildcard may only lead the host: *.example.com
        if '*' in host[1:]:
            return None

        wildcard = host.startswith('*')
        if wildcard:
            if len(host) > 1 and host[1] != '.':
                return None
            host = host[1:]

        return cls(realm, proto, wildcard, host, port, path)

    def contains(self, url):
        """
        Whether the URL (usually a return_to) is within this realm.

        @rtype: bool
        """
        url_parts = _parseURL(url)
        if url_parts is None:
            return False

        proto, host, port, path = url_parts
        if proto != self.proto or port != self.port or '*' in host:
            return False

        if not self.wildcard:
            if host != self.host:
                return False
        elif not host.endswith(self.host) and '.' + host != self.host:
            return False

        if path == self.path:
            return True

        path_len = len(self.path)
        if path[:path_len] != self.path:
            return False

        # the realm's path must end on a path or query boundary
        allowed = '&' if '?' in self.path else '?/'
        return self.path[-1] in allowed or path[path_len] in allowed

    def __repr__(self):
        return '%s(%r)' % (self.__class__.__name__, self.unparsed)

    def __str__(self):
        return self.unparsed
