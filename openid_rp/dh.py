"""Diffie-Hellman key exchange for association sessions."""
from cryptography.hazmat.primitives.asymmetric.dh import DHParameterNumbers, DHPublicNumbers

from openid_rp import cryptutil

# Defined in the OpenID 2.0 specification, appendix B
DEFAULT_DH_MODULUS = cryptutil.base64ToLong(
    'ANz5OguIOXLsDhmYmsWizjEOHTdxfo2Vcbt2I3MYZuYe91ouJ4mLBX+YkcLiemOcPym2CBRYHNOyyjmG0mg3BVd9RcLn5S3I'
    'HHoXGHblzqdLFEi/368Ygo79JRnxTkXjgmY0rxlJ5bU1zIKaSDuKdiI+XUkKJX8Fvf8W8vsixYOr')
DEFAULT_DH_GENERATOR = 2


def strxor(x, y):
    if len(x) != len(y):
        raise ValueError('Inputs to strxor must have the same length')
    return bytes(a ^ b for a, b in zip(x, y))


class DiffieHellman(object):
    """One side of a Diffie-Hellman exchange with a freshly generated
    private key."""

    def __init__(self, modulus, generator):
        self.parameter_numbers = DHParameterNumbers(modulus, generator)
        self.private_key = self.parameter_numbers.parameters().generate_private_key()

    @classmethod
    def fromDefaults(cls):
        return cls(DEFAULT_DH_MODULUS, DEFAULT_DH_GENERATOR)

    @property
    def modulus(self):
        return self.parameter_numbers.p

    @property
    def generator(self):
        return self.parameter_numbers.g

    @property
    def public(self):
        return self.private_key.public_key().public_numbers().y

    def usingDefaultValues(self):
        return (self.modulus, self.generator) == (DEFAULT_DH_MODULUS, DEFAULT_DH_GENERATOR)

    def getSharedSecret(self, composite):
        """Shared secret with the other party's public value.

        @type composite: int
        @rtype: int
        """
        peer = DHPublicNumbers(composite, self.parameter_numbers).public_key()
        return cryptutil.bytes_to_int(self.private_key.exchange(peer))

    def xorSecret(self, composite, secret, hash_func):
        """Recover the MAC key the provider encrypted with the hash of
        the shared secret.

        @param composite: provider's public value
        @type composite: int
        @param secret: encrypted MAC key
        @type secret: bytes
        @rtype: bytes
        """
        dh_shared = cryptutil.int_to_bytes(self.getSharedSecret(composite))
        return strxor(secret, hash_func(dh_shared))
