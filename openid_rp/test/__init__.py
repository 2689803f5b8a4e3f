import unittest


def pyUnitTests():
    """
    Aggregate unit tests from modules and return a suite.
    """
    test_module_names = [
        'associate',
        'association',
        'ax',
        'consumer',
        'cryptutil',
        'discover',
        'fetchers',
        'kvform',
        'message',
        'nonce',
        'pape',
        'realm',
        'request',
        'secret',
        'security',
        'sreg',
        'store',
        'token',
        'ui',
        'urinorm',
        'verify',
    ]

    test_modules = [
        __import__('openid_rp.test.test_{}'.format(name), {}, {}, ['unused'])
        for name in test_module_names
        ]

    loader = unittest.TestLoader()
    suite = unittest.TestSuite()

    for m in test_modules:
        suite.addTest(loader.loadTestsFromModule(m))

    return suite


def test_suite():
    """
    Collect all of the tests together in a single suite.
    """
    return pyUnitTests()
