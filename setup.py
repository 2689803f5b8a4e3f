from setuptools import setup, find_packages
from codecs import open

setup(
    name='openid-rp',
    version='0.1.dev1',
    description='OpenID relying party. Supports versions 1 and 2 of the OpenID protocol.',
    long_description=open('README.md', encoding='utf-8').read(),
    url='https://github.com/isagalaev/openid-rp',
    author='Ivan Sagalaev',
    author_email='maniac@softwaremaniacs.org',
    license='Apache',
    keywords='openid consumer relying party',

    classifiers=[
        'Development Status :: 2 - Pre-Alpha',
        'License :: OSI Approved :: Apache Software License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.4',
    ],

    install_requires=['html5lib', 'cryptography'],
    packages=find_packages(exclude=['openid_rp.test']),
)
