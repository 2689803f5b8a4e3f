"""Provider Authentication Policy Extension 1.0: ask the provider to
authenticate the user in a particular way and read back how it did.

Usage::

    builder.addExtension(pape.Request([pape.AUTH_MULTI_FACTOR], max_auth_age=3600))
    ...
    policy = pape.Response.fromSuccessResponse(response)
    if policy and pape.AUTH_MULTI_FACTOR in policy.auth_policies:
        ...
"""
import logging
import re

from openid_rp.extension import Extension
from openid_rp.message import registerNamespaceAlias, NamespaceAliasRegistrationError

__all__ = [
    'Request',
    'Response',
    'ns_uri',
    'AUTH_MULTI_FACTOR',
    'AUTH_MULTI_FACTOR_PHYSICAL',
    'AUTH_NONE',
    'AUTH_PHISHING_RESISTANT',
    'LEVELS_JISA',
    'LEVELS_NIST',
]

ns_uri = 'http://specs.openid.net/extensions/pape/1.0'

AUTH_MULTI_FACTOR_PHYSICAL = \
    'http://schemas.openid.net/pape/policies/2007/06/multi-factor-physical'
AUTH_MULTI_FACTOR = \
    'http://schemas.openid.net/pape/policies/2007/06/multi-factor'
AUTH_PHISHING_RESISTANT = \
    'http://schemas.openid.net/pape/policies/2007/06/phishing-resistant'
AUTH_NONE = \
    'http://schemas.openid.net/pape/policies/2007/06/none'

LEVELS_NIST = 'http://csrc.nist.gov/publications/nistpubs/800-63/SP800-63V1_0_2.pdf'
LEVELS_JISA = 'http://www.jisa.or.jp/spec/auth_level.html'

# Aliases used for the assurance level types we know about
LEVEL_ALIASES = {
    LEVELS_NIST: 'nist',
    LEVELS_JISA: 'jisa',
}

TIME_VALIDATOR = re.compile(r'^\d\d\d\d-\d\d-\d\dT\d\d:\d\d:\d\dZ$')

try:
    registerNamespaceAlias(ns_uri, 'pape')
except NamespaceAliasRegistrationError as e:
    logging.exception('registerNamespaceAlias(%r, %r) failed: %s' % (ns_uri, 'pape', e))


class Request(Extension):
    """
    @ivar preferred_auth_policies: policy URIs the provider should
        satisfy, most preferred first
    @ivar max_auth_age: seconds since the user last actively
        authenticated at the provider, beyond which they should be
        asked again
    @ivar preferred_auth_level_types: assurance level type URIs the
        provider should report, e.g. L{LEVELS_NIST}
    """
    ns_alias = 'pape'
    ns_uri = ns_uri

    def __init__(self, preferred_auth_policies=None, max_auth_age=None,
                 preferred_auth_level_types=None):
        self.preferred_auth_policies = list(preferred_auth_policies or [])
        self.max_auth_age = max_auth_age
        self.preferred_auth_level_types = list(preferred_auth_level_types or [])

    def __bool__(self):
        return bool(self.preferred_auth_policies or
                    self.max_auth_age is not None or
                    self.preferred_auth_level_types)

    def addPolicyURI(self, policy_uri):
        if policy_uri not in self.preferred_auth_policies:
            self.preferred_auth_policies.append(policy_uri)

    def addAuthLevel(self, level_type_uri):
        if level_type_uri not in self.preferred_auth_level_types:
            self.preferred_auth_level_types.append(level_type_uri)

    def getExtensionArgs(self):
        ns_args = {
            'preferred_auth_policies': ' '.join(self.preferred_auth_policies),
        }
        if self.max_auth_age is not None:
            ns_args['max_auth_age'] = str(int(self.max_auth_age))

        if self.preferred_auth_level_types:
            aliases = []
            for i, level_type_uri in enumerate(self.preferred_auth_level_types):
                alias = LEVEL_ALIASES.get(level_type_uri, 'level%d' % i)
                ns_args['auth_level.ns.' + alias] = level_type_uri
                aliases.append(alias)
            ns_args['preferred_auth_level_types'] = ' '.join(aliases)
        return ns_args


class Response(Extension):
    """What the provider says about how it authenticated the user.

    @ivar auth_policies: policy URIs the provider satisfied. Empty
        when it reported L{AUTH_NONE}.
    @ivar auth_time: when the user last actively authenticated, as
        C{YYYY-MM-DDTHH:MM:SSZ}, or None
    @ivar auth_levels: assurance level type URI to the level the
        provider reported
    """
    ns_alias = 'pape'
    ns_uri = ns_uri

    def __init__(self, auth_policies=None, auth_time=None, auth_levels=None):
        self.auth_policies = list(auth_policies or [])
        self.auth_time = auth_time
        self.auth_levels = dict(auth_levels or {})

    @classmethod
    def fromSuccessResponse(cls, success_response):
        """The policy data of an authenticated response, if all of it
        is signed.

        @returns: a L{Response}, or None if there is no signed policy
            data
        """
        args = success_response.getSignedNS(ns_uri)
        if not args:
            return None
        self = cls()
        self.parseExtensionArgs(args)
        return self

    def parseExtensionArgs(self, args, strict=False):
        """
        @param strict: raise on malformed values instead of skipping
            them
        @raises ValueError: in strict mode, for a missing policy list,
            a bad auth_time or a level type without a level
        """
        policies_str = args.get('auth_policies')
        if policies_str is None:
            if strict:
                raise ValueError('Missing auth_policies')
            policies_str = ''
        self.auth_policies = [p for p in policies_str.split() if p != AUTH_NONE]

        auth_time = args.get('auth_time')
        if auth_time is not None:
            if TIME_VALIDATOR.match(auth_time):
                self.auth_time = auth_time
            elif strict:
                raise ValueError('auth_time must be in RFC3339 format')

        for key, level_type_uri in args.items():
            if not key.startswith('auth_level.ns.'):
                continue
            alias = key[len('auth_level.ns.'):]
            level = args.get('auth_level.' + alias)
            if level is None:
                if strict:
                    raise ValueError('No level for auth_level.ns.%s' % (alias,))
                continue
            self.auth_levels[level_type_uri] = level

    def getAuthLevel(self, level_type_uri):
        """
        @raises KeyError: if the provider reported no level of that type
        """
        return self.auth_levels[level_type_uri]

    @property
    def nist_auth_level(self):
        """The NIST assurance level as an int, or None."""
        level = self.auth_levels.get(LEVELS_NIST)
        if level is None:
            return None
        try:
            return int(level)
        except ValueError:
            return None

    def getExtensionArgs(self):
        ns_args = {
            'auth_policies': ' '.join(self.auth_policies) or AUTH_NONE,
        }
        if self.auth_time is not None:
            ns_args['auth_time'] = self.auth_time
        for i, (level_type_uri, level) in enumerate(sorted(self.auth_levels.items())):
            alias = LEVEL_ALIASES.get(level_type_uri, 'level%d' % i)
            ns_args['auth_level.ns.' + alias] = level_type_uri
            ns_args['auth_level.' + alias] = str(level)
        return ns_args
