"""Cryptographic helpers: randomness, hashing, HMAC and conversions
between long integers and their btwoc byte representation.
"""
import codecs
import os
import string

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.constant_time import bytes_eq
from cryptography.hazmat.primitives.hmac import HMAC

from openid_rp.oidutil import fromBase64, toBase64

__all__ = [
    'base64ToLong',
    'bytes_to_int',
    'const_eq',
    'hmacSha1',
    'hmacSha256',
    'int_to_bytes',
    'longToBase64',
    'randomBytes',
    'randomString',
    'sha1',
    'sha256',
]

HANDLE_CHARS = string.ascii_letters + string.digits


def randomBytes(n):
    return os.urandom(n)


def randomString(length, chars=HANDLE_CHARS):
    """Produce a string of C{length} characters picked from C{chars}
    with a cryptographic source of randomness."""
    data = randomBytes(length)
    return ''.join(chars[b % len(chars)] for b in data)


def _digest(algorithm, data):
    digest = hashes.Hash(algorithm)
    digest.update(data)
    return digest.finalize()


def _hmac(algorithm, key, data):
    mac = HMAC(key, algorithm)
    mac.update(data)
    return mac.finalize()


def sha1(data):
    return _digest(hashes.SHA1(), data)


def sha256(data):
    return _digest(hashes.SHA256(), data)


def hmacSha1(key, data):
    return _hmac(hashes.SHA1(), key, data)


def hmacSha256(key, data):
    return _hmac(hashes.SHA256(), key, data)


def const_eq(a, b):
    """Compare two byte strings in constant time."""
    return bytes_eq(a, b)


def bytes_to_int(value):
    return int(codecs.encode(value, 'hex'), 16)


def fix_btwoc(value):
    """Prepend a zero byte when the high bit is set, so the value
    reads as a positive two's complement number."""
    array = bytearray(value)
    if array[0] > 127:
        array = bytearray([0]) + array
    return bytes(array)


def int_to_bytes(value):
    hex_value = '{:x}'.format(value)
    if len(hex_value) % 2:
        hex_value = '0' + hex_value
    return fix_btwoc(bytearray.fromhex(hex_value))


def longToBase64(value):
    return toBase64(int_to_bytes(value))


def base64ToLong(s):
    return bytes_to_int(fromBase64(s))
