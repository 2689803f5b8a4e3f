"""Small helpers shared across the library: query string building,
base64 without newlines and named sentinel values.
"""
import binascii
import urllib.parse

__all__ = ['appendArgs', 'toBase64', 'fromBase64', 'Symbol']


def appendArgs(url, args):
    """Append query arguments to a HTTP(s) URL. If the URL already has
    query arguments, these arguments will be added, and the existing
    arguments will be preserved.

    @param args: The query arguments to add to the URL. If a
        dictionary is passed, the items will be sorted before
        appending them to the URL. If a sequence of pairs is passed,
        the order of the sequence will be preserved.

    @rtype: str
    """
    if hasattr(args, 'items'):
        args = sorted(args.items())
    else:
        args = list(args)

    if not args:
        return url

    sep = '&' if '?' in url else '?'
    return '%s%s%s' % (url, sep, urllib.parse.urlencode(args))


def toBase64(s):
    """Return bytes s as base64 text, omitting newlines."""
    return binascii.b2a_base64(s)[:-1].decode('ascii')


def fromBase64(s):
    """Return binary data from a base64 encoded string.

    @raises ValueError: when the input is not valid base64
    """
    if isinstance(s, str):
        try:
            s = s.encode('ascii')
        except UnicodeEncodeError as why:
            raise ValueError(str(why))
    try:
        return binascii.a2b_base64(s)
    except binascii.Error as why:
        raise ValueError(str(why))


class Symbol(object):
    """A named constant that compares equal only to other symbols of
    the same name. These are distinct from string objects.
    """

    def __init__(self, name):
        self.name = name

    def __eq__(self, other):
        return type(self) == type(other) and self.name == other.name

    def __ne__(self, other):
        return not (self == other)

    def __hash__(self):
        return hash((self.__class__, self.name))

    def __repr__(self):
        return '<Symbol %s>' % (self.name,)
