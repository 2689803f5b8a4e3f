'''
Stateless tokens: a signed, timestamped record of the endpoint an
OpenID 1 request was sent to, carried through the return_to URL so
that nothing has to be kept on the server between redirect and
return.

Layout before base64::

    HMAC-SHA256(key, payload) || payload
    payload = timestamp NUL identity_url NUL local_id NUL server_url
'''
import binascii
import collections
import time

from openid_rp import cryptutil
from openid_rp import oidutil
from openid_rp.errors import SignatureInvalid, TokenExpired

TOKEN_LIFETIME = 60 * 5

SIGNATURE_LENGTH = 32

SEPARATOR = '\x00'

Token = collections.namedtuple('Token', ['timestamp', 'identity_url', 'local_id', 'server_url'])


def serialize(identity_url, local_id, server_url, key, now=None):
    '''
    Signs the endpoint fields with key.

    Fields may not contain NUL characters.
    '''
    if now is None:
        now = time.time()
    fields = [str(int(now)), identity_url, local_id, server_url]
    if any(SEPARATOR in f for f in fields):
        raise ValueError('Token fields may not contain NUL characters')

    payload = SEPARATOR.join(fields).encode('utf-8')
    return oidutil.toBase64(cryptutil.hmacSha256(key, payload) + payload)


def deserialize(token, key, lifetime=TOKEN_LIFETIME, now=None):
    '''
    Checks the signature and age of a token and returns its Token.

    Raises SignatureInvalid when the token was tampered with or
    mangled and TokenExpired when it is older than lifetime.
    '''
    try:
        data = oidutil.fromBase64(token)
    except (ValueError, binascii.Error):
        raise SignatureInvalid('Token is not valid base64')

    if len(data) <= SIGNATURE_LENGTH:
        raise SignatureInvalid('Token is too short')

    signature, payload = data[:SIGNATURE_LENGTH], data[SIGNATURE_LENGTH:]
    if not cryptutil.const_eq(signature, cryptutil.hmacSha256(key, payload)):
        raise SignatureInvalid('Token signature mismatch')

    try:
        fields = payload.decode('utf-8').split(SEPARATOR)
        timestamp, identity_url, local_id, server_url = fields
        timestamp = int(timestamp)
    except ValueError:
        raise SignatureInvalid('Malformed token payload')

    if now is None:
        now = time.time()
    if now > timestamp + lifetime:
        raise TokenExpired('Token expired %d seconds ago' % (now - timestamp - lifetime))

    return Token(timestamp, identity_url, local_id, server_url)
