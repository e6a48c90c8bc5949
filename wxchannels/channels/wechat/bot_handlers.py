"""
个人微信入站消息处理

Wechaty Message -> ChannelMessage,并接入插件的消息处理函数。
"""

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable

from wxchannels.channels.base import ChannelMessage, ChannelType, MessageType
from wxchannels.channels.wechat.accounts import ResolvedWeChatAccount
from wxchannels.channels.wechat.session import WechatySession

logger = logging.getLogger(__name__)

# wechaty_puppet.MessageType 名称 -> MessageType
_MESSAGE_TYPES = {
    "MESSAGE_TYPE_TEXT": MessageType.TEXT,
    "MESSAGE_TYPE_IMAGE": MessageType.IMAGE,
    "MESSAGE_TYPE_EMOTICON": MessageType.IMAGE,
    "MESSAGE_TYPE_AUDIO": MessageType.VOICE,
    "MESSAGE_TYPE_VIDEO": MessageType.VIDEO,
    "MESSAGE_TYPE_ATTACHMENT": MessageType.FILE,
    "MESSAGE_TYPE_LOCATION": MessageType.LOCATION,
    "MESSAGE_TYPE_URL": MessageType.LINK,
}


def _type_name(message_type: Any) -> str:
    return getattr(message_type, "name", str(message_type))


def _timestamp_ms(date: Any) -> int:
    if isinstance(date, datetime):
        return int(date.timestamp() * 1000)
    return int(datetime.now().timestamp() * 1000)


async def wechat_message_to_channel_message(
    message: Any,
    bot: WechatySession,
    account: ResolvedWeChatAccount,
) -> ChannelMessage:
    """Wechaty 消息 -> ChannelMessage(metadata 包含 room、mentions、message_type)"""
    talker = message.talker()
    room = message.room()
    mentions = await message.mention_list() if room is not None else []
    type_name = _type_name(message.type())

    return ChannelMessage(
        message_id=str(message.message_id),
        channel=ChannelType.WECHAT,
        account_id=account.id,
        sender_id=talker.contact_id if talker is not None else "",
        recipient_id=getattr(bot.user, "contact_id", None),
        content=message.text() or "",
        msg_type=_MESSAGE_TYPES.get(type_name, MessageType.UNKNOWN),
        timestamp=_timestamp_ms(message.date()),
        metadata={
            "room": room.room_id if room is not None else None,
            "mentions": [contact.contact_id for contact in mentions],
            "message_type": type_name,
        },
    )


def setup_wechat_bot_handlers(
    bot: WechatySession,
    account: ResolvedWeChatAccount,
    dispatch: Callable[[ChannelMessage], Awaitable[int]],
) -> None:
    """把 Wechaty 的 message 事件接到 dispatch(转换失败只记录日志)"""

    async def on_message(message: Any):
        try:
            channel_message = await wechat_message_to_channel_message(message, bot, account)
        except Exception as e:
            logger.error(f"[WeChat] Failed to convert message for account {account.id}: {e}", exc_info=True)
            return
        await dispatch(channel_message)

    bot.on_message(on_message)
