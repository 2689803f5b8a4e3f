#-*-coding: utf-8-*-
"""
This is an implementation of the relying party side of the OpenID
authentication protocol, versions 1.x and 2.0, in Python.

See the :ref:`openid_rp.consumer` module for the main entry point,
:ref:`openid_rp.store` for the state a relying party keeps between
requests and :ref:`openid_rp.security` for the policy knobs.

.. code-block:: none

    Licensed under the Apache License, Version 2.0 (the "License");
    you may not use this file except in compliance with the License.
    You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0

    Unless required by applicable law or agreed to in writing, software
    distributed under the License is distributed on an "AS IS" BASIS,
    WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
    See the License for the specific language governing permissions
    and limitations under the License.
"""

version_info = (0, 1, 0)

__version__ = ".".join(str(x) for x in version_info)

__all__ = [
    'associate',
    'association',
    'ax',
    'consumer',
    'cryptutil',
    'dh',
    'discover',
    'errors',
    'extension',
    'fetchers',
    'kvform',
    'message',
    'oidutil',
    'pape',
    'realm',
    'request',
    'response',
    'secret',
    'security',
    'sreg',
    'store',
    'token',
    'ui',
    'urinorm',
    'verify',
]
