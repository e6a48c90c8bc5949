"""
策略解析

由宿主的入站逻辑调用,决定私聊是否处理、群聊是否需要 @ 机器人。
"""

from typing import Any, Mapping, Optional

from wxchannels.channels.accounts import DEFAULT_ACCOUNT_ID, get_accounts
from wxchannels.channels.base import DmPolicy


def resolve_dm_policy(cfg: Optional[Mapping[str, Any]], account_id: Optional[str] = None) -> str:
    """账号的私聊策略,未配置或取值非法时为 pairing"""
    entry = get_accounts(cfg).get(account_id or DEFAULT_ACCOUNT_ID)
    value = entry.get("dmPolicy") if isinstance(entry, dict) else None
    try:
        return DmPolicy(value).value
    except ValueError:
        return DmPolicy.PAIRING.value


def resolve_require_mention(
    cfg: Optional[Mapping[str, Any]],
    group_id: str,
    account_id: Optional[str] = None,
) -> bool:
    """
    群聊是否需要 @ 才响应

    先查 groups[group_id],再查 groups["*"];
    只有 requireMention 显式为 False 才关闭门控。
    """
    entry = get_accounts(cfg).get(account_id or DEFAULT_ACCOUNT_ID)
    groups = entry.get("groups") if isinstance(entry, dict) else None
    if not isinstance(groups, dict):
        return True

    group_cfg = groups.get(group_id)
    if not isinstance(group_cfg, dict):
        group_cfg = groups.get("*")
    if not isinstance(group_cfg, dict):
        return True
    return group_cfg.get("requireMention") is not False


def resolve_tool_policy(*_args: Any, **_kwargs: Any) -> str:
    return "open"
