"""
渠道插件模块

为多渠道机器人宿主提供两个渠道插件:
- 个人微信 (WeChat, 基于 Wechaty)
- 企业微信 (WeCom)

使用方式:
    from wxchannels.channels import ChannelMessage
    from wxchannels.channels.wecom import WeComChannelPlugin

    plugin = WeComChannelPlugin()

    # 注册入站消息处理函数
    @plugin.register_message_handler
    async def on_message(message: ChannelMessage):
        ...

    # 发送文本
    await plugin.send_text(cfg, "wecom:zhangsan", "您好!")
"""

from wxchannels.channels.base import (
    # 抽象基类
    BaseChannelPlugin,
    BaseResolvedAccount,

    # 数据模型
    ChannelMeta,
    ChannelCapabilities,
    ChannelMessage,
    AccountDescription,
    OutboundResult,
    DirectoryEntry,

    # 枚举类型
    ChannelType,
    MessageType,
    DmPolicy,
    GroupPolicy,
    ChunkMode,

    # 异常类
    ChannelAdapterError,
    ChannelNotConfiguredError,
    ConfigValidationError,
    AccountNotFoundError,
    ChannelMessageError,
    TargetNotFoundError,
    ChannelAuthError,
    CredentialError,
    TransportError,
)

__all__ = [
    # 抽象基类
    "BaseChannelPlugin",
    "BaseResolvedAccount",

    # 数据模型
    "ChannelMeta",
    "ChannelCapabilities",
    "ChannelMessage",
    "AccountDescription",
    "OutboundResult",
    "DirectoryEntry",

    # 枚举类型
    "ChannelType",
    "MessageType",
    "DmPolicy",
    "GroupPolicy",
    "ChunkMode",

    # 异常类
    "ChannelAdapterError",
    "ChannelNotConfiguredError",
    "ConfigValidationError",
    "AccountNotFoundError",
    "ChannelMessageError",
    "TargetNotFoundError",
    "ChannelAuthError",
    "CredentialError",
    "TransportError",
]
