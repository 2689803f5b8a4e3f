"""The relying party's own signing secret.

Used to sign data the relying party hands to the user agent and
later needs to trust again, like return_to arguments, without keeping
server-side session state. The secret is an association kept in the
association store under a sentinel URL no provider can have.
"""
import logging
import time

from openid_rp import cryptutil
from openid_rp.association import Association, getSecretSize
from openid_rp.errors import PrivateRPSecretNotFound
from openid_rp.security import SecuritySettings

PRIVATE_SECRET_URL = 'https://localhost/openid_rp/private_secret'

ASSOC_TYPE = 'HMAC-SHA256'


class PrivateSecretManager(object):
    """
    Keeps exactly one current secret, creating it on first use and
    replacing it once it can no longer outlive an authentication
    round trip. Older secrets stay in the store until they expire so
    that what they signed can still be checked.
    """

    def __init__(self, store, security=None):
        self.store = store
        self.security = security or SecuritySettings()

    def currentAssociation(self):
        assoc = self.store.getAssociation(PRIVATE_SECRET_URL)
        if assoc is None or not assoc.hasUsefulLifeRemaining(self.security.max_authentication_time):
            assoc = self._createAssociation()
        return assoc

    def currentHandle(self):
        return self.currentAssociation().handle

    def _createAssociation(self):
        now = int(time.time())
        handle = '{%s}{%x}{%s}' % (ASSOC_TYPE, now, cryptutil.randomString(16))
        assoc = Association(
            handle,
            cryptutil.randomBytes(getSecretSize(ASSOC_TYPE)),
            now,
            self.security.private_secret_max_age,
            ASSOC_TYPE,
        )
        self.store.storeAssociation(PRIVATE_SECRET_URL, assoc)
        logging.info('Created private secret %s' % handle)
        return assoc

    def sign(self, data, handle):
        """HMAC of C{data} with the secret named by C{handle}.

        @type data: bytes
        @rtype: bytes
        @raises PrivateRPSecretNotFound: if there is no unexpired
            secret with that handle
        """
        assoc = self.store.getAssociation(PRIVATE_SECRET_URL, handle)
        if assoc is None:
            raise PrivateRPSecretNotFound('No private secret with handle %r' % (handle,))
        return cryptutil.hmacSha256(assoc.secret, data)

    def verify(self, data, handle, signature):
        """Check a signature made by L{sign}. An unknown handle means
        the signature can't be trusted.

        @rtype: bool
        """
        try:
            expected = self.sign(data, handle)
        except PrivateRPSecretNotFound:
            logging.warning('Private secret %r not found, signature rejected' % (handle,))
            return False
        return cryptutil.const_eq(expected, signature)
