"""
个人微信消息发送

目标先按群ID查找,找不到再按联系人ID查找。
"""

import logging
import time
from typing import Any, Optional

from wxchannels.channels.base import TargetNotFoundError
from wxchannels.channels.wechat.session import WechatySession

logger = logging.getLogger(__name__)


def _message_id() -> str:
    return f"wechat-{int(time.time() * 1000)}"


async def find_wechat_conversation(bot: WechatySession, target_id: str) -> Any:
    """
    按ID查找群或联系人

    Raises:
        TargetNotFoundError: 群和联系人都不存在
    """
    room = await bot.find_room(target_id)
    if room is not None:
        return room
    contact = await bot.find_contact(target_id)
    if contact is not None:
        return contact
    raise TargetNotFoundError("WeChat", target_id)


async def send_wechat_text(bot: WechatySession, target_id: str, text: str) -> str:
    conversation = await find_wechat_conversation(bot, target_id)
    await conversation.say(text)
    return _message_id()


async def send_wechat_media(bot: WechatySession, target_id: str, media_url: str, text: Optional[str] = None) -> str:
    """发送 URL 或本地文件,text 作为附言随后发送"""
    conversation = await find_wechat_conversation(bot, target_id)
    await conversation.say(bot.file_box(media_url))
    if text:
        await conversation.say(text)
    return _message_id()


async def send_wechat_file(bot: WechatySession, target_id: str, file_path: str) -> str:
    conversation = await find_wechat_conversation(bot, target_id)
    await conversation.say(bot.bindings.file_box_from_file(file_path))
    return _message_id()
