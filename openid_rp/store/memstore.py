"""A thread-safe in-memory store for a single process."""
import threading
import time

from openid_rp.store import nonce
from openid_rp.store.interface import AssociationStore, NonceStore

NONCE_CLEANUP_INTERVAL = 60 * 10


class ServerAssocs(object):
    def __init__(self):
        self.assocs = {}

    def set(self, assoc):
        self.assocs[assoc.handle] = assoc

    def get(self, handle):
        assoc = self.assocs.get(handle)
        if assoc is not None and assoc.expiresIn <= 0:
            return None
        return assoc

    def remove(self, handle):
        return self.assocs.pop(handle, None) is not None

    def best(self):
        """The unexpired association with the most life left."""
        alive = [a for a in self.assocs.values() if a.expiresIn > 0]
        if not alive:
            return None
        return max(alive, key=lambda a: a.expiresIn)

    def cleanup(self):
        expired = [handle for handle, a in self.assocs.items() if a.expiresIn <= 0]
        for handle in expired:
            del self.assocs[handle]
        return len(expired), len(self.assocs)


class MemoryStore(AssociationStore, NonceStore):
    """Associations and nonces in dictionaries guarded by one lock.

    Fine for a single process and for tests; state is lost on restart.
    Nonces too old to be accepted again are dropped by L{useNonce} at
    most once every C{NONCE_CLEANUP_INTERVAL} seconds.
    """

    def __init__(self):
        self.server_assocs = {}
        self.nonces = set()
        self.next_nonce_cleanup = time.time() + NONCE_CLEANUP_INTERVAL
        self.lock = threading.Lock()

    def storeAssociation(self, server_url, assoc):
        with self.lock:
            self.server_assocs.setdefault(server_url, ServerAssocs()).set(assoc)

    def getAssociation(self, server_url, handle=None):
        with self.lock:
            assocs = self.server_assocs.get(server_url)
            if assocs is None:
                return None
            if handle is None:
                return assocs.best()
            return assocs.get(handle)

    def removeAssociation(self, server_url, handle):
        with self.lock:
            assocs = self.server_assocs.get(server_url)
            return assocs is not None and assocs.remove(handle)

    def useNonce(self, server_url, timestamp, salt):
        if abs(timestamp - time.time()) > nonce.SKEW:
            return False

        anonce = (str(server_url), int(timestamp), str(salt))
        with self.lock:
            now = time.time()
            if now >= self.next_nonce_cleanup:
                self._removeExpiredNonces(now)
                self.next_nonce_cleanup = now + NONCE_CLEANUP_INTERVAL
            if anonce in self.nonces:
                return False
            self.nonces.add(anonce)
            return True

    def _removeExpiredNonces(self, now):
        expired = {n for n in self.nonces if abs(n[1] - now) > nonce.SKEW}
        self.nonces -= expired
        return len(expired)

    def cleanupNonces(self):
        with self.lock:
            return self._removeExpiredNonces(time.time())

    def cleanupAssociations(self):
        removed = 0
        with self.lock:
            for server_url, assocs in list(self.server_assocs.items()):
                expired, remaining = assocs.cleanup()
                removed += expired
                if not remaining:
                    del self.server_assocs[server_url]
        return removed
