'''
Nonce strings: an ISO 8601 UTC timestamp followed by a salt, as in
C{openid.response_nonce}.
'''
import calendar
import string
import time

from openid_rp import cryptutil

__all__ = ['split', 'mkNonce', 'checkTimestamp']

NONCE_CHARS = string.ascii_letters + string.digits

# Maximum difference between the nonce timestamp and the local clock
SKEW = 60 * 60 * 5

TIME_FORMAT = '%Y-%m-%dT%H:%M:%SZ'
TIME_STR_LEN = len('0000-00-00T00:00:00Z')


def split(nonce_string):
    """Extract a timestamp from the given nonce string

    @returns: (timestamp, salt) where timestamp is seconds since the
        epoch
    @raises ValueError: if the nonce is malformed
    """
    timestamp_str = nonce_string[:TIME_STR_LEN]
    timestamp = calendar.timegm(time.strptime(timestamp_str, TIME_FORMAT))
    if timestamp < 0:
        raise ValueError('time out of range')
    return timestamp, nonce_string[TIME_STR_LEN:]


def checkTimestamp(nonce_string, allowed_skew=SKEW, now=None):
    """Is the timestamp of this nonce within the allowed clock skew?

    @rtype: bool
    """
    try:
        stamp, _ = split(nonce_string)
    except ValueError:
        return False

    if now is None:
        now = time.time()
    return now - allowed_skew <= stamp <= now + allowed_skew


def mkNonce(when=None):
    """Generate a nonce with the current timestamp, or C{when}."""
    salt = cryptutil.randomString(6, NONCE_CHARS)
    if when is None:
        when = time.time()
    return time.strftime(TIME_FORMAT, time.gmtime(when)) + salt
