"""
Associations: shared secrets between the relying party and a provider
used to sign and check C{openid.mode=id_res} messages.

The module also holds the compatibility table between association
types and session types and the C{L{SessionNegotiator}} that orders
the pairs a relying party is willing to request.

@var SESSION_TYPES: association type to the session types that may
    deliver its secret. A Diffie-Hellman session only fits the
    association type whose hash has the same size as its own.
@var SECRET_SIZES: association type to secret length in bytes.
"""
import time

from openid_rp import cryptutil
from openid_rp import kvform
from openid_rp import oidutil
from openid_rp.message import OPENID_NS

__all__ = [
    'Association',
    'SessionNegotiator',
    'default_negotiator',
    'encrypted_negotiator',
    'isCompatible',
]

SESSION_TYPES = {
    'HMAC-SHA1': ('DH-SHA1', 'no-encryption'),
    'HMAC-SHA256': ('DH-SHA256', 'no-encryption'),
}

SECRET_SIZES = {
    'HMAC-SHA1': 20,
    'HMAC-SHA256': 32,
}

HMAC_FUNCTIONS = {
    'HMAC-SHA1': cryptutil.hmacSha1,
    'HMAC-SHA256': cryptutil.hmacSha256,
}

all_association_types = ['HMAC-SHA256', 'HMAC-SHA1']

default_association_order = [
    ('HMAC-SHA256', 'DH-SHA256'),
    ('HMAC-SHA256', 'no-encryption'),
    ('HMAC-SHA1', 'DH-SHA1'),
    ('HMAC-SHA1', 'no-encryption'),
]

only_encrypted_association_order = [
    ('HMAC-SHA256', 'DH-SHA256'),
    ('HMAC-SHA1', 'DH-SHA1'),
]


def getSessionTypes(assoc_type):
    """Return the allowed session types for a given association type"""
    return SESSION_TYPES.get(assoc_type, ())


def isCompatible(assoc_type, session_type):
    return session_type in getSessionTypes(assoc_type)


def checkSessionType(assoc_type, session_type):
    if not isCompatible(assoc_type, session_type):
        raise ValueError('Session type %r not valid for association type %r'
                         % (session_type, assoc_type))


def getSecretSize(assoc_type):
    try:
        return SECRET_SIZES[assoc_type]
    except KeyError:
        raise ValueError('Unsupported association type: %r' % (assoc_type,))


def getHashBits(assoc_type):
    return getSecretSize(assoc_type) * 8


class SessionNegotiator(object):
    """Ordered list of (association type, session type) pairs a
    relying party is willing to use.

    The first pair is what an associate request proposes. When the
    provider answers with C{unsupported-type} and suggests another
    pair, C{L{isAllowed}} decides whether to try it.

    @ivar allowed_types: allowed pairs, most preferred first
    @type allowed_types: [(str, str)]
    """

    def __init__(self, allowed_types):
        self.setAllowedTypes(allowed_types)

    def copy(self):
        return self.__class__(list(self.allowed_types))

    def setAllowedTypes(self, allowed_types):
        for assoc_type, session_type in allowed_types:
            checkSessionType(assoc_type, session_type)
        self.allowed_types = list(allowed_types)

    def isAllowed(self, assoc_type, session_type):
        return ((assoc_type, session_type) in self.allowed_types and
                isCompatible(assoc_type, session_type))

    def getAllowedType(self):
        """@returns: the preferred pair or (None, None)"""
        try:
            return self.allowed_types[0]
        except IndexError:
            return (None, None)


default_negotiator = SessionNegotiator(default_association_order)
encrypted_negotiator = SessionNegotiator(only_encrypted_association_order)


class Association(object):
    """
    A shared secret with a provider, or the relying party's own
    private secret.

    @ivar handle: opaque handle the provider gave this association
    @type handle: str
    @ivar secret: the shared secret
    @type secret: bytes
    @ivar issued: unix timestamp of issue
    @type issued: int
    @ivar lifetime: seconds the association is good for after issue
    @type lifetime: int
    @ivar assoc_type: C{'HMAC-SHA1'} or C{'HMAC-SHA256'}
    @type assoc_type: str
    """

    def __init__(self, handle, secret, issued, lifetime, assoc_type):
        if assoc_type not in all_association_types:
            raise ValueError('%r is not a supported association type' % (assoc_type,))
        if not isinstance(secret, bytes):
            raise TypeError('Association secret must be bytes')
        if len(secret) != getSecretSize(assoc_type):
            raise ValueError('Wrong size secret (%s bytes) for association type %s'
                             % (len(secret), assoc_type))

        self.handle = handle
        self.secret = secret
        self.issued = issued
        self.lifetime = lifetime
        self.assoc_type = assoc_type

    @classmethod
    def fromExpiresIn(cls, expires_in, handle, secret, assoc_type):
        return cls(handle, secret, int(time.time()), expires_in, assoc_type)

    def getExpiresIn(self, now=None):
        """Seconds this association is still valid for, or 0.

        @rtype: int
        """
        if now is None:
            now = int(time.time())
        return max(0, self.issued + self.lifetime - now)

    expiresIn = property(getExpiresIn)

    def hasUsefulLifeRemaining(self, minimum, now=None):
        """Whether the association will outlive an authentication
        round trip of C{minimum} seconds started now."""
        return self.getExpiresIn(now) >= minimum

    def sign(self, pairs):
        """Signature of a sequence of (key, value) pairs in key-value
        form.

        @rtype: bytes
        """
        kv = kvform.seqToKV(pairs)
        return HMAC_FUNCTIONS[self.assoc_type](self.secret, kv.encode('utf-8'))

    def getMessageSignature(self, message):
        """@returns: the base64 encoded signature of a message's
        signed list"""
        return oidutil.toBase64(self.sign(self._makePairs(message)))

    def signMessage(self, message):
        """Return a copy of the message signed over all its OpenID
        arguments."""
        if message.hasKey(OPENID_NS, 'sig') or message.hasKey(OPENID_NS, 'signed'):
            raise ValueError('Message already has signed list or signature')

        signed_message = message.copy()
        signed_message.setArg(OPENID_NS, 'assoc_handle', self.handle)
        signed_list = sorted(
            [k[len('openid.'):] for k in signed_message.toPostArgs() if k.startswith('openid.')] +
            ['signed'])
        signed_message.setArg(OPENID_NS, 'signed', ','.join(signed_list))
        signed_message.setArg(OPENID_NS, 'sig', self.getMessageSignature(signed_message))
        return signed_message

    def checkMessageSignature(self, message):
        """Recompute the signature of a message and compare it with
        the one it carries, in constant time.

        @raises ValueError: if the message has no signature or no
            signed list
        """
        message_sig = message.getArg(OPENID_NS, 'sig')
        if not message_sig:
            raise ValueError('%s has no sig.' % (message,))
        calculated_sig = self.getMessageSignature(message)
        return cryptutil.const_eq(calculated_sig.encode('utf-8'), message_sig.encode('utf-8'))

    def _makePairs(self, message):
        signed = message.getArg(OPENID_NS, 'signed')
        if not signed:
            raise ValueError('Message has no signed list: %s' % (message,))

        data = message.toPostArgs()
        return [(field, data.get('openid.' + field, '')) for field in signed.split(',')]

    def __eq__(self, other):
        return type(self) == type(other) and self.__dict__ == other.__dict__

    def __ne__(self, other):
        return not (self == other)

    def __repr__(self):
        return '<%s.%s %s %s>' % (
            self.__class__.__module__,
            self.__class__.__name__,
            self.assoc_type,
            self.handle)
