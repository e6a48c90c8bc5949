"""
个人微信渠道模块

- WeChatChannelPlugin: 实现渠道插件契约,支持扫码登录
- WechatySession: 单个账号的 Wechaty 会话

Wechaty 是可选依赖: pip install "wxchannels[wechat]"

使用方式:
    from wxchannels.channels.wechat import WeChatChannelPlugin

    plugin = WeChatChannelPlugin()
    login = await plugin.login_with_qr_start(cfg, "default")
    print(login["qr_url"])
    await plugin.login_with_qr_wait(cfg, "default")
    await plugin.send_text(cfg, "wechat:room123@chatroom", "大家好")
"""

from wxchannels.channels.wechat.accounts import (
    ResolvedWeChatAccount,
    WeChatAccountConfig,
    resolve_wechat_account,
)
from wxchannels.channels.wechat.plugin import WeChatChannelPlugin, get_wechat_plugin
from wxchannels.channels.wechat.session import WechatyBindings, WechatySession, create_wechaty_session

__all__ = [
    "ResolvedWeChatAccount",
    "WeChatAccountConfig",
    "resolve_wechat_account",
    "WeChatChannelPlugin",
    "get_wechat_plugin",
    "WechatyBindings",
    "WechatySession",
    "create_wechaty_session",
]
