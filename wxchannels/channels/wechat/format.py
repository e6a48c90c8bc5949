"""个人微信目标/文本格式化"""

from typing import Iterable

from wxchannels.channels.base import ChannelMessage
from wxchannels.channels.targets import TargetNormalizer
from wxchannels.channels.text import truncate_text

WECHAT_PREFIXES = ("wechat", "wx")

wechat_normalizer = TargetNormalizer(WECHAT_PREFIXES)


def format_wechat_target(target_id: str) -> str:
    if target_id.startswith("wechat:"):
        return target_id
    return f"wechat:{target_id}"


def parse_wechat_target(raw: str) -> str:
    return wechat_normalizer.normalize(raw)


def truncate_wechat_text(text: str, max_length: int = 2048) -> str:
    return truncate_text(text, max_length)


def format_wechat_message(message: ChannelMessage) -> str:
    parts = []
    if message.sender_id:
        parts.append(f"[{message.sender_id}]")
    if message.content:
        parts.append(message.content)
    return " ".join(parts)


def format_wechat_mentions(mention_ids: Iterable[str]) -> str:
    return " ".join(f"@{mention_id}" for mention_id in mention_ids)
