"""个人微信目标解析与通讯录查询"""

import logging
from typing import List, Optional

from wxchannels.channels.base import DirectoryEntry
from wxchannels.channels.wechat.session import WechatySession

logger = logging.getLogger(__name__)


async def _room_entry(room) -> DirectoryEntry:
    return DirectoryEntry(id=room.room_id, type="room", name=await room.topic())


def _contact_entry(contact) -> DirectoryEntry:
    return DirectoryEntry(id=contact.contact_id, type="contact", name=contact.name)


async def resolve_wechat_target(bot: WechatySession, target_id: str) -> Optional[DirectoryEntry]:
    """先查群再查联系人,都找不到返回 None"""
    room = await bot.find_room(target_id)
    if room is not None:
        return await _room_entry(room)
    contact = await bot.find_contact(target_id)
    if contact is not None:
        return _contact_entry(contact)
    return None


async def list_wechat_rooms(bot: WechatySession) -> List[DirectoryEntry]:
    return [await _room_entry(room) for room in await bot.find_all_rooms()]


async def list_wechat_contacts(bot: WechatySession) -> List[DirectoryEntry]:
    return [_contact_entry(contact) for contact in await bot.find_all_contacts()]


async def get_all_wechat_targets(bot: WechatySession) -> List[DirectoryEntry]:
    return await list_wechat_rooms(bot) + await list_wechat_contacts(bot)


def filter_targets(entries: List[DirectoryEntry], query: str) -> List[DirectoryEntry]:
    needle = query.lower()
    return [entry for entry in entries if needle in (entry.name or "").lower()]


async def search_wechat_targets(bot: WechatySession, query: str) -> List[DirectoryEntry]:
    """按群名/联系人名(大小写不敏感)搜索"""
    return filter_targets(await get_all_wechat_targets(bot), query)
