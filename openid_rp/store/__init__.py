"""
Storage for the state a relying party shares between requests:
associations with providers and the nonces of accepted assertions.

The interfaces are in L{openid_rp.store.interface}; an in-memory
implementation of both is in L{openid_rp.store.memstore}.
"""
