"""
Interfaces for the stores a L{RelyingParty<openid_rp.consumer.RelyingParty>}
needs. A single object may implement both.

Implementations are shared by concurrent authentication attempts and
must make each call atomic for its key.
"""


class AssociationStore(object):
    """Associations keyed by (server URL, handle)."""

    def storeAssociation(self, server_url, association):
        """
        Put an association into storage, retrievable by server URL
        and handle.

        @param server_url: The URL of the provider endpoint, or the
            sentinel URL of the relying party's private secret. Don't
            assume any limitations on its character set.
        @type server_url: str

        @type association: L{Association<openid_rp.association.Association>}
        """
        raise NotImplementedError

    def getAssociation(self, server_url, handle=None):
        """
        Return the unexpired association for the server URL and, if
        given, handle, or C{None}.

        Without a handle, return the one that stays valid for the
        longest time.

        @rtype: L{Association<openid_rp.association.Association>} or None
        """
        raise NotImplementedError

    def removeAssociation(self, server_url, handle):
        """
        Remove the matching association.

        @returns: whether an association was removed
        @rtype: bool
        """
        raise NotImplementedError

    def cleanupAssociations(self):
        """Remove expired associations.

        @returns: the number of associations removed
        """
        raise NotImplementedError


class NonceStore(object):
    """Nonces keyed by (context, timestamp, salt)."""

    def useNonce(self, server_url, timestamp, salt):
        """
        Record a nonce and report whether it was fresh.

        @param server_url: context of the nonce: the provider endpoint
            URL, or the relying party's own context for nonces it
            minted itself
        @type server_url: str

        @param timestamp: the nonce time, seconds since the epoch
        @type timestamp: int

        @type salt: str

        @returns: C{False} if the nonce was seen before or its
            timestamp is outside L{SKEW<openid_rp.store.nonce.SKEW>},
            C{True} otherwise
        @rtype: bool
        """
        raise NotImplementedError

    def cleanupNonces(self):
        """Forget nonces too old to be accepted anyway.

        @returns: the number of nonces removed
        """
        raise NotImplementedError
