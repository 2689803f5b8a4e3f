"""OpenID User Interface extension 1.0: ask the provider to render
its pages for a popup window."""
from openid_rp.extension import Extension

__all__ = ['UIRequest', 'ns_uri']

ns_uri = 'http://specs.openid.net/extensions/ui/1.0'

POPUP = 'popup'


class UIRequest(Extension):
    """
    @ivar mode: display mode, C{'popup'}
    @ivar lang: preferred language tag, e.g. C{'en-US'}
    @ivar icon: whether the provider should show the relying party's
        icon
    """
    ns_alias = 'ui'

    def __init__(self, mode=POPUP, lang=None, icon=False):
        self.ns_uri = ns_uri
        self.mode = mode
        self.lang = lang
        self.icon = icon

    def getExtensionArgs(self):
        args = {}
        if self.mode:
            args['mode'] = self.mode
        if self.lang:
            args['lang'] = self.lang
        if self.icon:
            args['icon'] = 'true'
        return args
