"""Simple Registration 1.0 and 1.1: ask the provider for profile
data along with the authentication, and read it from the response.

Usage::

    builder.addExtension(sreg.SRegRequest(required=['email'], optional=['fullname']))
    ...
    profile = sreg.SRegResponse.fromSuccessResponse(response)
    if profile:
        email = profile.get('email')
"""
import logging

from openid_rp.extension import Extension
from openid_rp.message import registerNamespaceAlias, NamespaceAliasRegistrationError

__all__ = [
    'SRegRequest',
    'SRegResponse',
    'data_fields',
    'ns_uri',
    'ns_uri_1_0',
    'ns_uri_1_1',
    'supportsSReg',
]

data_fields = {
    'fullname': 'Full Name',
    'nickname': 'Nickname',
    'dob': 'Date of Birth',
    'email': 'E-mail Address',
    'gender': 'Gender',
    'postcode': 'Postal Code',
    'country': 'Country',
    'language': 'Language',
    'timezone': 'Time Zone',
}

ns_uri_1_0 = 'http://openid.net/sreg/1.0'
ns_uri_1_1 = 'http://openid.net/extensions/sreg/1.1'
ns_uri = ns_uri_1_1

try:
    registerNamespaceAlias(ns_uri_1_1, 'sreg')
except NamespaceAliasRegistrationError as e:
    logging.exception('registerNamespaceAlias(%r, %r) failed: %s' % (ns_uri_1_1, 'sreg', e))


class SRegNamespaceError(ValueError):
    """The simple registration namespace was not found and could not
    be created using the expected name."""


def checkFieldName(field_name):
    """@raises ValueError: if the field name is not a Simple
    Registration field"""
    if field_name not in data_fields:
        raise ValueError('%r is not a defined simple registration field' % (field_name,))


def supportsSReg(endpoint):
    """Does the discovered endpoint advertise Simple Registration?"""
    return (endpoint.usesExtension(ns_uri_1_1) or
            endpoint.usesExtension(ns_uri_1_0))


def getSRegNS(message):
    """Find the Simple Registration namespace URI of a message,
    defining it with the "sreg" alias if it has none.

    @raises SRegNamespaceError: if "sreg" is taken by another URI
    """
    for sreg_ns_uri in [ns_uri_1_1, ns_uri_1_0]:
        alias = message.namespaces.getAlias(sreg_ns_uri)
        if alias is not None:
            return sreg_ns_uri

    try:
        message.namespaces.addAlias(ns_uri_1_1, 'sreg')
    except KeyError as why:
        raise SRegNamespaceError(why)
    return ns_uri_1_1


class SRegRequest(Extension):
    """A request for profile fields.

    @ivar required: fields the relying party can't do without
    @ivar optional: fields that would be nice to have
    @ivar policy_url: URL of the relying party's privacy policy
    """
    ns_alias = 'sreg'

    def __init__(self, required=None, optional=None, policy_url=None,
                 sreg_ns_uri=ns_uri):
        self.required = []
        self.optional = []
        self.policy_url = policy_url
        self.ns_uri = sreg_ns_uri

        if required:
            self.requestFields(required, required=True)
        if optional:
            self.requestFields(optional, required=False)

    def allRequestedFields(self):
        return self.required + self.optional

    def wereFieldsRequested(self):
        return bool(self.allRequestedFields())

    def __contains__(self, field_name):
        return field_name in self.required or field_name in self.optional

    def requestField(self, field_name, required=False):
        """Request a field. Asking for an optional field again as
        required upgrades it; the reverse has no effect."""
        checkFieldName(field_name)

        if required:
            if field_name in self.optional:
                self.optional.remove(field_name)
            if field_name not in self.required:
                self.required.append(field_name)
        elif field_name not in self:
            self.optional.append(field_name)

    def requestFields(self, field_names, required=False):
        if isinstance(field_names, str):
            raise TypeError('Fields should be passed as a list of '
                            'strings (not %r)' % (type(field_names),))

        for field_name in field_names:
            self.requestField(field_name, required)

    def getExtensionArgs(self):
        args = {}
        if self.required:
            args['required'] = ','.join(self.required)
        if self.optional:
            args['optional'] = ','.join(self.optional)
        if self.policy_url:
            args['policy_url'] = self.policy_url
        return args


class SRegResponse(Extension):
    """Profile data from a positive assertion. Behaves like a
    read-only dict of the fields the provider sent."""
    ns_alias = 'sreg'

    def __init__(self, data=None, sreg_ns_uri=ns_uri):
        self.data = data or {}
        self.ns_uri = sreg_ns_uri

    @classmethod
    def fromSuccessResponse(cls, success_response, signed_only=True):
        """Extract the fields from an authenticated response.

        @param signed_only: ignore the data unless every sreg
            argument is covered by the provider's signature
        @returns: an L{SRegResponse}, or None when C{signed_only} and
            some of the arguments are unsigned
        """
        sreg_ns_uri = getSRegNS(success_response.message)

        if signed_only:
            args = success_response.getSignedNS(sreg_ns_uri)
        else:
            args = success_response.message.getArgs(sreg_ns_uri)

        if args is None:
            return None

        data = {f: args[f] for f in data_fields if f in args}
        return cls(data, sreg_ns_uri)

    def getExtensionArgs(self):
        return self.data

    def get(self, field_name, default=None):
        checkFieldName(field_name)
        return self.data.get(field_name, default)

    def items(self):
        return self.data.items()

    def keys(self):
        return self.data.keys()

    def __contains__(self, field_name):
        checkFieldName(field_name)
        return field_name in self.data

    def __getitem__(self, field_name):
        checkFieldName(field_name)
        return self.data[field_name]

    def __bool__(self):
        return bool(self.data)
