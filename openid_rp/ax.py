"""Attribute Exchange 1.0 fetch: ask the provider for attributes
named by type URIs and read their values from the response.

Usage::

    request = ax.FetchRequest()
    request.add(ax.AttrInfo('http://axschema.org/contact/email', required=True))
    builder.addExtension(request)
    ...
    fetched = ax.FetchResponse.fromSuccessResponse(response)
    if fetched:
        email = fetched.getSingle('http://axschema.org/contact/email')
"""
import logging

from openid_rp.extension import Extension
from openid_rp.message import NamespaceMap, registerNamespaceAlias, \
     NamespaceAliasRegistrationError

__all__ = [
    'AttrInfo',
    'AXError',
    'FetchRequest',
    'FetchResponse',
    'NotAXMessage',
    'UNLIMITED_VALUES',
    'ns_uri',
    'supportsAX',
]

ns_uri = 'http://openid.net/srv/ax/1.0'

# The count of an attribute that asks for as many values as the
# provider has
UNLIMITED_VALUES = 'unlimited'

# Providers must support aliases at least this long
MINIMUM_SUPPORTED_ALIAS_LENGTH = 32

try:
    registerNamespaceAlias(ns_uri, 'ax')
except NamespaceAliasRegistrationError as e:
    logging.exception('registerNamespaceAlias(%r, %r) failed: %s' % (ns_uri, 'ax', e))


class AXError(ValueError):
    """Attribute exchange arguments that don't follow the protocol."""


class NotAXMessage(AXError):
    """There is no attribute exchange mode in the arguments."""

    def __str__(self):
        return self.__class__.__name__


def checkAlias(alias):
    """
    @raises AXError: if the alias contains a comma or a period
    """
    if ',' in alias or '.' in alias:
        raise AXError('Alias %r must not contain comma or period' % (alias,))


def supportsAX(endpoint):
    """Does the discovered endpoint advertise Attribute Exchange?"""
    return endpoint.usesExtension(ns_uri)


def toTypeURIs(namespace_map, alias_list_s):
    """The type URIs of a comma separated list of aliases.

    @raises KeyError: for an alias that isn't defined
    """
    uris = []
    if alias_list_s:
        for alias in alias_list_s.split(','):
            type_uri = namespace_map.getNamespaceURI(alias)
            if type_uri is None:
                raise KeyError('No type is defined for attribute name %r' % (alias,))
            uris.append(type_uri)
    return uris


def _aliasFor(aliases, type_uri):
    alias = aliases.getAlias(type_uri)
    if alias is not None:
        return alias
    i = 0
    while aliases.getNamespaceURI('ext%d' % i) is not None:
        i += 1
    return aliases.addAlias(type_uri, 'ext%d' % i)


class AttrInfo(object):
    """One requested attribute.

    @ivar type_uri: the attribute's type identifier
    @ivar count: how many values are wanted, or L{UNLIMITED_VALUES}
    @ivar required: whether the relying party needs it
    @ivar alias: the name to use for it in the message, chosen
        automatically if None
    """

    def __init__(self, type_uri, count=1, required=False, alias=None):
        self.type_uri = type_uri
        self.count = count
        self.required = required
        self.alias = alias
        if alias is not None:
            checkAlias(alias)

    def wantsUnlimitedValues(self):
        return self.count == UNLIMITED_VALUES

    def __repr__(self):
        return '<AttrInfo %s count=%s required=%s>' % (self.type_uri, self.count, self.required)


class AXMessage(Extension):
    """Base class for attribute exchange messages, which are told
    apart by their C{mode}."""
    ns_alias = 'ax'
    ns_uri = ns_uri
    mode = None

    def _checkMode(self, ax_args):
        mode = ax_args.get('mode')
        if mode != self.mode:
            if not mode:
                raise NotAXMessage()
            raise AXError('Expected mode %r; got %r' % (self.mode, mode))

    def _newArgs(self):
        return {'mode': self.mode}


class FetchRequest(AXMessage):
    """Attributes to ask the provider for.

    @ivar requested_attributes: type URI to L{AttrInfo}, in the order
        they were added
    @ivar update_url: where the provider may later send updated values
    """
    mode = 'fetch_request'

    def __init__(self, update_url=None):
        self.requested_attributes = {}
        self.update_url = update_url

    def add(self, attribute):
        """
        @type attribute: L{AttrInfo}
        @raises KeyError: if that type was requested already
        """
        if attribute.type_uri in self.requested_attributes:
            raise KeyError('The attribute %r has already been requested' % (attribute.type_uri,))
        self.requested_attributes[attribute.type_uri] = attribute

    def getExtensionArgs(self):
        aliases = NamespaceMap()
        for attribute in self.iterAttrs():
            if attribute.alias is not None:
                aliases.addAlias(attribute.type_uri, attribute.alias)

        ax_args = self._newArgs()
        required = []
        if_available = []
        for attribute in self.iterAttrs():
            alias = _aliasFor(aliases, attribute.type_uri)
            ax_args['type.' + alias] = attribute.type_uri
            if attribute.count != 1:
                ax_args['count.' + alias] = str(attribute.count)
            if attribute.required:
                required.append(alias)
            else:
                if_available.append(alias)

        if required:
            ax_args['required'] = ','.join(required)
        if if_available:
            ax_args['if_available'] = ','.join(if_available)
        if self.update_url:
            ax_args['update_url'] = self.update_url
        return ax_args

    def getRequiredAttrs(self):
        """The type URIs of the required attributes."""
        return [a.type_uri for a in self.iterAttrs() if a.required]

    def iterAttrs(self):
        return iter(self.requested_attributes.values())

    def __iter__(self):
        return iter(self.requested_attributes)

    def __contains__(self, type_uri):
        return type_uri in self.requested_attributes


class FetchResponse(AXMessage):
    """Attribute values sent by the provider.

    @ivar data: type URI to the list of its values
    """
    mode = 'fetch_response'

    def __init__(self, update_url=None):
        self.data = {}
        self.update_url = update_url

    @classmethod
    def fromSuccessResponse(cls, success_response, signed=True):
        """The attributes in an authenticated response.

        @param signed: ignore the attributes unless all of them are
            covered by the provider's signature
        @returns: a L{FetchResponse}, or None if the response has no
            (signed) attribute exchange arguments
        @raises AXError: if the arguments are malformed
        """
        if signed:
            ax_args = success_response.getSignedNS(ns_uri)
        else:
            ax_args = success_response.message.getArgs(ns_uri)
        if not ax_args:
            return None

        self = cls()
        try:
            self.parseExtensionArgs(ax_args)
        except KeyError as why:
            raise AXError('Missing attribute exchange argument: %s' % (why,))
        return self

    def addValue(self, type_uri, value):
        self.data.setdefault(type_uri, []).append(value)

    def setValues(self, type_uri, values):
        self.data[type_uri] = list(values)

    def getExtensionArgs(self):
        aliases = NamespaceMap()
        ax_args = self._newArgs()
        for type_uri, values in self.data.items():
            alias = _aliasFor(aliases, type_uri)
            ax_args['type.' + alias] = type_uri
            ax_args['count.' + alias] = str(len(values))
            for i, value in enumerate(values):
                ax_args['value.%s.%d' % (alias, i + 1)] = value
        if self.update_url:
            ax_args['update_url'] = self.update_url
        return ax_args

    def parseExtensionArgs(self, ax_args):
        """
        @raises AXError: for a wrong mode, a bad alias or count
        @raises KeyError: for a value that is declared but missing,
            or a type with two aliases
        """
        self._checkMode(ax_args)

        aliases = NamespaceMap()
        for key, value in ax_args.items():
            if key.startswith('type.'):
                alias = key[len('type.'):]
                checkAlias(alias)
                aliases.addAlias(value, alias)

        for type_uri, alias in aliases.items():
            count_s = ax_args.get('count.' + alias)
            if count_s is None:
                value = ax_args['value.' + alias]
                values = [value] if value else []
            else:
                try:
                    count = int(count_s)
                except ValueError:
                    raise AXError('Integer value expected for count.%s, got %r' % (alias, count_s))
                values = [ax_args['value.%s.%d' % (alias, i)] for i in range(1, count + 1)]
            self.data[type_uri] = values

        self.update_url = ax_args.get('update_url')

    def get(self, type_uri):
        """All the values of an attribute.

        @raises KeyError: if the provider sent none for it
        """
        return self.data[type_uri]

    def getSingle(self, type_uri, default=None):
        """The only value of an attribute, or C{default}.

        @raises AXError: if there is more than one
        """
        values = self.data.get(type_uri)
        if not values:
            return default
        if len(values) > 1:
            raise AXError('More than one value present for %r' % (type_uri,))
        return values[0]

    def count(self, type_uri):
        return len(self.get(type_uri))

    def __contains__(self, type_uri):
        return type_uri in self.data

    def __bool__(self):
        return bool(self.data)
