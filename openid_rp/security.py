"""Security policy of a relying party."""
import copy

from openid_rp import association

DEFAULTS = {
    # hash strength range of acceptable associations, in bits
    'min_hash_bits': 160,
    'max_hash_bits': 256,
    # lowest protocol version accepted, as (major, minor)
    'minimum_version': (1, 0),
    'require_ssl': False,
    # refuse to authenticate without a shared association
    'require_association': False,
    'reject_delegating_identifiers': False,
    # only use OP Identifier (directed identity) endpoints
    'require_directed_identity': False,
    # mint our own nonce for 1.x providers, which send none
    'protect_downlevel_replay': True,
    'allow_plaintext_associations_over_http': False,
    # seconds an authentication round trip may take
    'max_authentication_time': 60 * 5,
    # lifetime of the relying party's private secret, seconds
    'private_secret_max_age': 60 * 60 * 24 * 7,
    # optional predicate over discovered endpoints
    'endpoint_filter': None,
}


class SecuritySettings(object):
    """
    Policy knobs consulted while selecting endpoints, making
    associations and checking assertions. Pass overrides as keyword
    arguments::

        SecuritySettings(require_ssl=True, min_hash_bits=256)

    @raises TypeError: on unknown settings
    """

    def __init__(self, **settings):
        unknown = set(settings) - set(DEFAULTS)
        if unknown:
            raise TypeError('Unknown security settings: %s' % ', '.join(sorted(unknown)))
        self.__dict__.update(DEFAULTS)
        self.__dict__.update(settings)

    def copy(self, **overrides):
        result = copy.copy(self)
        for name, value in overrides.items():
            if name not in DEFAULTS:
                raise TypeError('Unknown security setting: %s' % name)
            setattr(result, name, value)
        return result

    def isAssociationInPermittedRange(self, assoc_type):
        try:
            bits = association.getHashBits(assoc_type)
        except ValueError:
            return False
        return self.min_hash_bits <= bits <= self.max_hash_bits

    def isVersionAllowed(self, version):
        return version is not None and version >= self.minimum_version

    def __repr__(self):
        return '<%s %r>' % (self.__class__.__name__, self.__dict__)
