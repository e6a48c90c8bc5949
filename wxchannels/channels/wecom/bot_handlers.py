"""
企业微信入站消息处理

回调消息解密后是扁平的 XML 字典(parse_message 的结果),
这里负责分类并转换为 ChannelMessage。
"""

import logging
from typing import Any, Dict, Mapping

from wxchannels.channels.base import ChannelMessage, ChannelType, MessageType
from wxchannels.channels.wecom.accounts import ResolvedWeComAccount

logger = logging.getLogger(__name__)

USER_MESSAGE_TYPES = ("text", "image", "voice", "video", "file", "location", "link")


def is_user_message(message: Mapping[str, Any]) -> bool:
    return message.get("MsgType") in USER_MESSAGE_TYPES


def is_event_message(message: Mapping[str, Any]) -> bool:
    return bool(message.get("Event"))


def is_subscribe_event(message: Mapping[str, Any]) -> bool:
    return message.get("Event") == "subscribe"


def is_unsubscribe_event(message: Mapping[str, Any]) -> bool:
    return message.get("Event") == "unsubscribe"


def is_location_message(message: Mapping[str, Any]) -> bool:
    return message.get("MsgType") == "location"


def extract_text_content(message: Mapping[str, Any]) -> str:
    return message.get("Content") or ""


def _message_type(msg_type: str) -> MessageType:
    try:
        return MessageType(msg_type)
    except ValueError:
        return MessageType.UNKNOWN


def wecom_message_to_channel_message(
    message: Mapping[str, Any],
    account: ResolvedWeComAccount,
) -> ChannelMessage:
    """
    回调消息 -> ChannelMessage

    message_id 取 MsgId,事件消息没有 MsgId 时用 CreateTime;
    CreateTime 是秒级时间戳,转换为毫秒。
    """
    create_time = int(message.get("CreateTime") or 0)
    msg_type = message.get("MsgType") or ""

    attachments = []
    if message.get("MediaId"):
        attachments.append({
            "type": msg_type,
            "media_id": message.get("MediaId"),
            "url": message.get("PicUrl"),
        })

    metadata: Dict[str, Any] = {
        "msg_type": msg_type,
        "media_id": message.get("MediaId"),
        "pic_url": message.get("PicUrl"),
        "event": message.get("Event"),
        "event_key": message.get("EventKey"),
        "agent_id": message.get("AgentID"),
    }
    if is_location_message(message):
        metadata["location"] = {
            "latitude": message.get("Location_X"),
            "longitude": message.get("Location_Y"),
            "scale": message.get("Scale"),
            "label": message.get("Label"),
        }

    return ChannelMessage(
        message_id=message.get("MsgId") or str(create_time),
        channel=ChannelType.WECOM,
        account_id=account.id,
        sender_id=message.get("FromUserName") or "",
        recipient_id=message.get("ToUserName"),
        content=extract_text_content(message),
        msg_type=_message_type(msg_type),
        timestamp=create_time * 1000,
        attachments=attachments,
        metadata=metadata,
        raw_data=dict(message),
    )
