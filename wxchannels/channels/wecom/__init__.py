"""
企业微信渠道模块

提供企微集成的完整功能:
- WeComChannelPlugin: 实现渠道插件契约
- WeComApiClient: API客户端(token 缓存、消息发送、素材上传)
- Flask回调服务器(server.py)

使用方式:
    from wxchannels.channels.wecom import WeComChannelPlugin

    plugin = WeComChannelPlugin()
    account = plugin.resolve_account(cfg, "default")
    if plugin.is_configured(account):
        await plugin.start_account(cfg, "default")
        await plugin.send_text(cfg, "wecom:user:zhangsan", "您好!")
"""

from wxchannels.channels.wecom.accounts import (
    ResolvedWeComAccount,
    WeComAccountConfig,
    WeComApiType,
    resolve_wecom_account,
)
from wxchannels.channels.wecom.client import WeComApiClient, WeComAPIError
from wxchannels.channels.wecom.plugin import WeComChannelPlugin, get_wecom_plugin

__all__ = [
    "ResolvedWeComAccount",
    "WeComAccountConfig",
    "WeComApiType",
    "resolve_wecom_account",
    "WeComApiClient",
    "WeComAPIError",
    "WeComChannelPlugin",
    "get_wecom_plugin",
]
