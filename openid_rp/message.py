"""The OpenID message model: namespaced arguments and their
encodings as query arguments, URLs and key-value form.
"""
import copy
import urllib.parse

from openid_rp import kvform
from openid_rp import oidutil

__all__ = ['Message', 'NamespaceMap', 'no_default',
           'OPENID_NS', 'BARE_NS', 'OPENID1_NS', 'OPENID11_NS', 'OPENID2_NS',
           'IDENTIFIER_SELECT', 'registerNamespaceAlias']

IDENTIFIER_SELECT = 'http://specs.openid.net/auth/2.0/identifier_select'

# Namespace URI to alias mappings that extension modules register.
# OpenID 1 messages resolve these aliases without a namespace
# declaration, and new messages prefer them.
registered_aliases = {}

OPENID1_NS = 'http://openid.net/signon/1.0'
OPENID11_NS = 'http://openid.net/signon/1.1'
OPENID2_NS = 'http://specs.openid.net/auth/2.0'

# Alias of the OpenID namespace itself ("openid.<key>")
NULL_NAMESPACE = oidutil.Symbol('Null namespace')

# Whatever OpenID namespace the message is in
OPENID_NS = oidutil.Symbol('OpenID namespace')

# Arguments without the "openid." prefix
BARE_NS = oidutil.Symbol('Bare namespace')

# Sentinel for getArg: raise KeyError instead of returning a default
no_default = oidutil.Symbol('no_default')

OPENID1_NAMESPACES = [OPENID1_NS, OPENID11_NS]


class NamespaceAliasRegistrationError(Exception):
    """Raised when an alias or namespace URI has already been
    registered."""


def registerNamespaceAlias(namespace_uri, alias):
    """Register a default alias for a namespace URI, e.g. "sreg" for
    Simple Registration."""
    if registered_aliases.get(alias) == namespace_uri:
        return

    if namespace_uri in registered_aliases.values():
        raise NamespaceAliasRegistrationError(
            'Namespace uri %r already registered' % (namespace_uri,))

    if alias in registered_aliases:
        raise NamespaceAliasRegistrationError(
            'Alias %r already registered' % (alias,))

    registered_aliases[alias] = namespace_uri


def _aliasFor(namespace_uri):
    for alias, uri in registered_aliases.items():
        if uri == namespace_uri:
            return alias
    return None


class UndefinedOpenIDNamespace(ValueError):
    """Raised if the generic OpenID namespace is accessed when there
    is no OpenID namespace set for this message."""


class Message(object):
    """
    A set of OpenID arguments grouped by namespace URI.

    @ivar args: mapping of (namespace, key) to value
    @ivar namespaces: the L{NamespaceMap} of this message
    """

    allowed_openid_namespaces = [OPENID1_NS, OPENID11_NS, OPENID2_NS]

    def __init__(self, openid_namespace=None):
        self.args = {}
        self.namespaces = NamespaceMap()
        self._openid_ns_uri = None
        if openid_namespace is not None:
            self.setOpenIDNamespace(openid_namespace)

    @classmethod
    def fromPostArgs(cls, args):
        """Construct a Message from a dictionary of query or POST
        arguments, one value per key."""
        self = cls()

        openid_args = {}
        for key, value in args.items():
            if isinstance(value, list):
                raise TypeError('query dict must have one value for each key, '
                                'not lists of values.  Query is %r' % (args,))
            prefix, _, rest = key.partition('.')
            if prefix == 'openid' and rest:
                openid_args[rest] = value
            else:
                self.args[(BARE_NS, key)] = value

        self._fromOpenIDArgs(openid_args)
        return self

    @classmethod
    def fromOpenIDArgs(cls, openid_args):
        """Construct a Message from arguments without the "openid."
        prefix, e.g. a parsed key-value form response."""
        self = cls()
        self._fromOpenIDArgs(openid_args)
        return self

    @classmethod
    def fromKVForm(cls, kvform_string):
        return cls.fromOpenIDArgs(kvform.kvToDict(kvform_string))

    def _fromOpenIDArgs(self, openid_args):
        ns_args = []

        for rest, value in openid_args.items():
            ns_alias, dot, ns_key = rest.partition('.')
            if not dot:
                ns_alias, ns_key = NULL_NAMESPACE, rest

            if ns_alias == 'ns':
                self.namespaces.addAlias(value, ns_key)
            elif ns_alias == NULL_NAMESPACE and ns_key == 'ns':
                self.namespaces.addAlias(value, NULL_NAMESPACE)
            else:
                ns_args.append((ns_alias, ns_key, value))

        openid_ns_uri = self.namespaces.getNamespaceURI(NULL_NAMESPACE)
        if openid_ns_uri is None:
            openid_ns_uri = OPENID1_NS
        self.setOpenIDNamespace(openid_ns_uri)

        for ns_alias, ns_key, value in ns_args:
            ns_uri = self.namespaces.getNamespaceURI(ns_alias)
            if ns_uri is None:
                ns_uri = self._getDefaultNamespace(ns_alias)
                if ns_uri is None:
                    # Undeclared alias: the dotted key belongs to the
                    # OpenID namespace itself.
                    ns_uri = self._openid_ns_uri
                    ns_key = '%s.%s' % (ns_alias, ns_key)
                else:
                    self.namespaces.addAlias(ns_uri, ns_alias)
            self.setArg(ns_uri, ns_key, value)

    def _getDefaultNamespace(self, mystery_alias):
        if self.isOpenID1():
            return registered_aliases.get(mystery_alias)
        return None

    def setOpenIDNamespace(self, openid_ns_uri):
        if openid_ns_uri not in self.allowed_openid_namespaces:
            raise ValueError('Invalid null namespace: %r' % (openid_ns_uri,))
        self.namespaces.addAlias(openid_ns_uri, NULL_NAMESPACE)
        self._openid_ns_uri = openid_ns_uri

    def getOpenIDNamespace(self):
        return self._openid_ns_uri

    def isOpenID1(self):
        return self._openid_ns_uri in OPENID1_NAMESPACES

    def isOpenID2(self):
        return self._openid_ns_uri == OPENID2_NS

    def setup_url(self):
        """The C{user_setup_url} of an OpenID 1 negative immediate
        response, or None."""
        if self.isOpenID1():
            return self.getArg(OPENID_NS, 'user_setup_url')
        return None

    def copy(self):
        return copy.deepcopy(self)

    def toPostArgs(self):
        """Return all arguments with "openid." in front of namespaced
        arguments."""
        args = {}

        for ns_uri, alias in self.namespaces.items():
            if alias == NULL_NAMESPACE:
                # OpenID 1.0 messages carry no namespace declaration
                if ns_uri != OPENID1_NS:
                    args['openid.ns'] = ns_uri
            else:
                args['openid.ns.' + alias] = ns_uri

        for (ns_uri, ns_key), value in self.args.items():
            args[self.getKey(ns_uri, ns_key)] = value

        return args

    def toArgs(self):
        """Return all namespaced arguments without the "openid."
        prefix, failing if any bare arguments exist."""
        kvargs = {}
        for k, v in self.toPostArgs().items():
            if not k.startswith('openid.'):
                raise ValueError(
                    'This message can only be encoded as a POST, because it '
                    'contains arguments that are not prefixed with "openid."')
            kvargs[k[len('openid.'):]] = v
        return kvargs

    def toURL(self, base_url):
        """Generate a GET URL with the parameters in this message
        attached as query parameters."""
        return oidutil.appendArgs(base_url, self.toPostArgs())

    def toKVForm(self):
        return kvform.dictToKV(self.toArgs())

    def toURLEncoded(self):
        return urllib.parse.urlencode(sorted(self.toPostArgs().items()))

    def _fixNS(self, namespace):
        if namespace == OPENID_NS:
            if self._openid_ns_uri is None:
                raise UndefinedOpenIDNamespace('OpenID namespace not set')
            return self._openid_ns_uri
        if namespace != BARE_NS and not isinstance(namespace, str):
            raise TypeError('Namespace must be BARE_NS, OPENID_NS or a string. '
                            'got %r' % (namespace,))
        return namespace

    def hasKey(self, namespace, ns_key):
        namespace = self._fixNS(namespace)
        return (namespace, ns_key) in self.args

    def getKey(self, namespace, ns_key):
        """Get the query argument name for a namespaced key."""
        namespace = self._fixNS(namespace)
        if namespace == BARE_NS:
            return ns_key

        ns_alias = self.namespaces.getAlias(namespace)
        if ns_alias is None:
            return None

        if ns_alias == NULL_NAMESPACE:
            tail = ns_key
        else:
            tail = '%s.%s' % (ns_alias, ns_key)
        return 'openid.' + tail

    def getArg(self, namespace, key, default=None):
        """Get a value for a namespaced key.

        @raises KeyError: if the key is missing and C{default} is
            C{no_default}
        """
        namespace = self._fixNS(namespace)
        try:
            return self.args[(namespace, key)]
        except KeyError:
            if default is no_default:
                raise KeyError((namespace, key))
            return default

    def getArgs(self, namespace):
        """Get the arguments defined in this namespace.

        @rtype: dict
        """
        namespace = self._fixNS(namespace)
        return {
            ns_key: value
            for (pair_ns, ns_key), value in self.args.items()
            if pair_ns == namespace
        }

    def updateArgs(self, namespace, updates):
        namespace = self._fixNS(namespace)
        for k, v in updates.items():
            self.setArg(namespace, k, v)

    def setArg(self, namespace, key, value):
        namespace = self._fixNS(namespace)
        self.args[(namespace, key)] = value
        if namespace != BARE_NS:
            self.namespaces.add(namespace)

    def delArg(self, namespace, key):
        namespace = self._fixNS(namespace)
        del self.args[(namespace, key)]

    def getAliasedArg(self, aliased_key, default=None):
        """Look up an argument by its name in a signed list, i.e.
        "<alias>.<key>" or "<key>" for the OpenID namespace."""
        if aliased_key == 'ns':
            return self.getOpenIDNamespace()

        if aliased_key.startswith('ns.'):
            uri = self.namespaces.getNamespaceURI(aliased_key[3:])
            return default if uri is None else uri

        alias, dot, key = aliased_key.partition('.')
        ns = self.namespaces.getNamespaceURI(alias) if dot else None
        if ns is None:
            key = aliased_key
            ns = self.getOpenIDNamespace()

        return self.getArg(ns, key, default)

    def __eq__(self, other):
        return type(self) == type(other) and self.args == other.args

    def __ne__(self, other):
        return not (self == other)

    def __repr__(self):
        return '<%s.%s %r>' % (
            self.__class__.__module__,
            self.__class__.__name__,
            self.args)


class NamespaceMap(object):
    """A bidirectional mapping between namespace URIs and aliases."""

    def __init__(self):
        self.alias_to_namespace = {}
        self.namespace_to_alias = {}

    def getAlias(self, namespace_uri):
        return self.namespace_to_alias.get(namespace_uri)

    def getNamespaceURI(self, alias):
        return self.alias_to_namespace.get(alias)

    def items(self):
        """@returns: iterator of (namespace_uri, alias)"""
        return self.namespace_to_alias.items()

    def addAlias(self, namespace_uri, desired_alias):
        """Map a namespace URI to an alias.

        @raises KeyError: if either side is already mapped differently
        """
        current_namespace_uri = self.alias_to_namespace.get(desired_alias)
        if current_namespace_uri is not None and current_namespace_uri != namespace_uri:
            raise KeyError('Cannot map %r to alias %r. %r is already mapped to alias %r' % (
                namespace_uri, desired_alias, current_namespace_uri, desired_alias))

        alias = self.namespace_to_alias.get(namespace_uri)
        if alias is not None and alias != desired_alias:
            raise KeyError('Cannot map %r to alias %r. It is already mapped to alias %r' % (
                namespace_uri, desired_alias, alias))

        self.alias_to_namespace[desired_alias] = namespace_uri
        self.namespace_to_alias[namespace_uri] = desired_alias
        return desired_alias

    def add(self, namespace_uri):
        """Add this namespace URI to the mapping, without caring what
        alias it ends up with."""
        alias = self.namespace_to_alias.get(namespace_uri)
        if alias is not None:
            return alias

        default_alias = _aliasFor(namespace_uri)
        if default_alias is not None and default_alias not in self.alias_to_namespace:
            return self.addAlias(namespace_uri, default_alias)

        i = 0
        while str(i) in self.alias_to_namespace:
            i += 1
        return self.addAlias(namespace_uri, str(i))

    def isDefined(self, namespace_uri):
        return namespace_uri in self.namespace_to_alias

    def __contains__(self, namespace_uri):
        return self.isDefined(namespace_uri)
