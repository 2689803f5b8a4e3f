"""Key-value form: the newline separated C{key:value} encoding used
for direct responses from an OpenID provider and for signing.
"""
import logging

__all__ = ['seqToKV', 'kvToSeq', 'dictToKV', 'kvToDict', 'KVFormError']


class KVFormError(ValueError):
    pass


def _complain(strict, msg, data):
    formatted = '%s: %r' % (msg, data)
    if strict:
        raise KVFormError(formatted)
    logging.debug(formatted)


def seqToKV(seq, strict=False):
    """Represent a sequence of pairs of strings as newline-terminated
    key:value pairs. The pairs are generated in the order given.

    @raises KVFormError: when a key or value can not be represented
    @rtype: str
    """
    lines = []
    for k, v in seq:
        if not isinstance(k, str):
            _complain(strict, 'Converting key to text', k)
            k = str(k)
        if not isinstance(v, str):
            _complain(strict, 'Converting value to text', v)
            v = str(v)

        if '\n' in k or ':' in k:
            raise KVFormError('Invalid key for key-value form: %r' % (k,))
        if '\n' in v:
            raise KVFormError('Invalid value for key-value form: %r' % (v,))
        if k.strip() != k or v.strip() != v:
            _complain(strict, 'Leading or trailing whitespace', (k, v))

        lines.append(k + ':' + v + '\n')

    return ''.join(lines)


def kvToSeq(data, strict=False):
    """Parse a newline-terminated key:value string into a list of
    pairs. Bytes are decoded as UTF-8.

    @rtype: [(str, str)]
    """
    if isinstance(data, bytes):
        try:
            data = data.decode('utf-8')
        except UnicodeDecodeError as why:
            raise KVFormError('Key-value data is not UTF-8: %s' % why)

    lines = data.split('\n')
    if lines[-1]:
        _complain(strict, 'Does not end in a newline', data)
    else:
        del lines[-1]

    pairs = []
    for line_num, line in enumerate(lines, 1):
        if not line.strip():
            continue
        if ':' not in line:
            _complain(strict, 'Line %d does not contain a colon' % line_num, data)
            continue
        k, v = line.split(':', 1)
        if not k.strip():
            _complain(strict, 'Line %d has an empty key' % line_num, data)
        pairs.append((k.strip(), v.strip()))

    return pairs


def dictToKV(d):
    return seqToKV(sorted(d.items()))


def kvToDict(s):
    return dict(kvToSeq(s))
