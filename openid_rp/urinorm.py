'''
URI normalization (RFC 3986, section 6) for comparing identifiers and
return_to URLs.
'''
import re
import urllib.parse


ILLEGAL_CHAR_RE = re.compile("[^-A-Za-z0-9:/?#[\\]@!$&'()*+,;=._~%]", re.UNICODE)
HOST_PORT_RE = re.compile(r'^[A-Za-z0-9\.]+(:\d+)?(/|$)')
PCT_ENCODED_RE = re.compile(r'%([0-9A-Fa-f]{2})')
UNRESERVED = frozenset('-._~0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz')
SAFE = ''.join(map(chr, range(256)))
DEFAULT_PORTS = {'http': '80', 'https': '443'}


def _unquote_unreserved(match):
    c = chr(int(match.group(1), 16))
    return c if c in UNRESERVED else match.group().upper()


def remove_dot_segments(path):
    output = []
    while path:
        if path.startswith('/./') or path == '/.':
            path = '/' + path[3:]
        elif path.startswith('/../') or path == '/..':
            path = '/' + path[4:]
            if output:
                output.pop()
        else:
            end = path.find('/', 1 if path.startswith('/') else 0)
            if end == -1:
                end = len(path)
            output.append(path[:end])
            path = path[end:]
    return ''.join(output)


def _normalize_authority(scheme, authority):
    # idna chokes on empty labels, so encode label by label
    authority = '.'.join(label.encode('idna').decode('ascii') for label in authority.lower().split('.'))
    host, colon, port = authority.partition(':')
    if colon and (not port or DEFAULT_PORTS.get(scheme) == port):
        return host
    return authority


def _normalize_path(path):
    path = PCT_ENCODED_RE.sub(_unquote_unreserved, path)
    return remove_dot_segments(path) or '/'


def urinorm(uri):
    '''
    Normalize an absolute http(s) URI.

    Raises ValueError for relative or non-HTTP URIs and for URIs that
    contain illegal characters.
    '''
    # 'server' and 'server:port' are not parsed as a netloc otherwise
    if HOST_PORT_RE.match(uri):
        uri = 'http://' + uri

    scheme, authority, path, params, query, fragment = urllib.parse.urlparse(uri)
    scheme = scheme.lower() or 'http'
    if not authority or scheme not in DEFAULT_PORTS:
        raise ValueError('Not an absolute HTTP or HTTPS URI: %s' % uri)

    path, params, query, fragment = (
        urllib.parse.quote(part, safe=SAFE) for part in (path, params, query, fragment))

    uri = urllib.parse.urlunparse((
        scheme,
        _normalize_authority(scheme, authority),
        _normalize_path(path),
        params, query, fragment,
    ))
    match = ILLEGAL_CHAR_RE.search(uri)
    if match:
        raise ValueError('Illegal characters in URI: %r at position %s' %
                         (match.group(), match.start()))
    return uri
