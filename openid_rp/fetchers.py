'''
Wrapper around urlopen providing default parameters and safety checkings.
'''
import urllib.request
import urllib.error
import urllib.parse
import sys

import openid_rp


USER_AGENT = 'openid-rp/%s (%s) Python-urllib/%s' % (
    openid_rp.__version__,
    sys.platform,
    urllib.request.__version__,
)

# Seconds before a direct request to a provider is abandoned
DEFAULT_TIMEOUT = 10


def fetch(url, body=None, headers=None, timeout=DEFAULT_TIMEOUT):
    '''
    Performs a GET, or a POST when a body is given.

    Raises urllib.error.URLError for non-HTTP URLs and HTTP errors
    and socket.timeout when the server is too slow.
    '''
    if urllib.parse.urlparse(url).scheme not in ('http', 'https'):
        raise urllib.error.URLError('Bad URL scheme: %r' % url)

    if headers is None:
        headers = {}
    headers.setdefault('User-Agent', USER_AGENT)
    if body is not None:
        headers.setdefault('Content-Type', 'application/x-www-form-urlencoded')

    request = urllib.request.Request(url, data=body, headers=headers)
    return urllib.request.urlopen(request, timeout=timeout)
