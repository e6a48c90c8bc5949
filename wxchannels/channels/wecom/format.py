"""企业微信目标/文本格式化"""

from enum import Enum
from typing import NamedTuple, Optional

from wxchannels.channels.base import ChannelMessage
from wxchannels.channels.targets import TargetNormalizer
from wxchannels.channels.text import truncate_text

WECOM_PREFIXES = ("wecom", "we-chat-work", "qiye")

wecom_normalizer = TargetNormalizer(WECOM_PREFIXES)


class WeComTargetType(str, Enum):
    USER = "user"
    DEPARTMENT = "department"
    TAG = "tag"


class WeComTarget(NamedTuple):
    target_type: WeComTargetType
    target_id: str


def format_wecom_target(target_id: str, target_type: Optional[str] = None) -> str:
    return f"wecom:{target_type or WeComTargetType.USER.value}:{target_id}"


def parse_wecom_target(raw: str) -> WeComTarget:
    """
    解析 [<prefix>:][<type>:]<id>

    type 只识别 user/department/tag,缺省为 user;
    其他形式的第二段作为ID的一部分保留。
    """
    value = wecom_normalizer.normalize(raw)
    head, sep, rest = value.partition(":")
    if sep and rest:
        try:
            return WeComTarget(WeComTargetType(head), rest)
        except ValueError:
            pass
    return WeComTarget(WeComTargetType.USER, value)


def truncate_wecom_text(text: str, max_length: int = 2048) -> str:
    return truncate_text(text, max_length)


def format_wecom_message(message: ChannelMessage) -> str:
    """消息展示: "[sender] text" """
    parts = []
    if message.sender_id:
        parts.append(f"[{message.sender_id}]")
    if message.content:
        parts.append(message.content)
    return " ".join(parts)


def format_wecom_text_card(title: str, description: str, url: str) -> str:
    """把文本卡片渲染成 markdown(用于不支持卡片的展示场景)"""
    return "\n".join([f"**{title}**", description, f"[Read more]({url})"])
