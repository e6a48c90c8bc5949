"""企业微信目标解析与通讯录查询"""

import logging
from typing import List, Optional, Union

from wxchannels.channels.base import ChannelAdapterError, DirectoryEntry
from wxchannels.channels.wecom.client import WeComApiClient
from wxchannels.channels.wecom.format import WeComTargetType

logger = logging.getLogger(__name__)


async def resolve_wecom_target(
    bot: WeComApiClient,
    target_id: str,
    target_type: Union[str, WeComTargetType] = WeComTargetType.USER,
) -> Optional[DirectoryEntry]:
    """
    解析目标: 用户查 /user/get,部门查 /department/list,标签没有查询接口原样返回

    查询失败返回 None
    """
    target_type = WeComTargetType(target_type)

    if target_type == WeComTargetType.USER:
        try:
            user = await bot.get_user_info(target_id)
        except ChannelAdapterError as e:
            logger.debug(f"User {target_id} not resolved: {e}")
            return None
        return DirectoryEntry(id=target_id, type="user", name=user.get("name"))

    if target_type == WeComTargetType.DEPARTMENT:
        try:
            department_id = int(target_id)
            departments = await bot.get_department_list(department_id)
        except (ValueError, ChannelAdapterError) as e:
            logger.debug(f"Department {target_id} not resolved: {e}")
            return None
        for department in departments:
            if department.get("id") == department_id:
                return DirectoryEntry(id=target_id, type="department", name=department.get("name"))
        return None

    return DirectoryEntry(id=target_id, type="tag", name=target_id)


async def get_all_wecom_targets(bot: WeComApiClient) -> List[DirectoryEntry]:
    """列出所有部门,查询失败时返回空列表"""
    try:
        departments = await bot.get_department_list()
    except ChannelAdapterError as e:
        logger.warning(f"Failed to list departments for account {bot.account.id}: {e}")
        return []
    return [
        DirectoryEntry(id=str(department.get("id")), type="department", name=department.get("name"))
        for department in departments
    ]


async def search_wecom_targets(bot: WeComApiClient, query: str) -> List[DirectoryEntry]:
    """按名称(大小写不敏感)搜索部门"""
    needle = query.lower()
    return [entry for entry in await get_all_wecom_targets(bot) if needle in (entry.name or "").lower()]
