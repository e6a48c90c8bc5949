"""
个人微信账号解析

原始配置 -> WeChatAccountConfig(pydantic 校验) -> ResolvedWeChatAccount。
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from pydantic import Field, ValidationError

from wxchannels.channels.accounts import (
    BaseAccountConfig,
    common_resolved_fields,
    format_validation_errors,
    get_account_entry,
    parse_account_config,
)
from wxchannels.channels.base import BaseResolvedAccount
from wxchannels.config.settings import get_settings

logger = logging.getLogger(__name__)

CHANNEL_LABEL = "WeChat"


class WeChatAccountConfig(BaseAccountConfig):
    """个人微信原始账号配置"""
    puppet: Optional[str] = None
    puppet_options: Optional[Dict[str, Any]] = None
    qr_code: Optional[bool] = None


class ResolvedWeChatAccount(BaseResolvedAccount):
    """已解析的个人微信账号"""
    puppet: str = "wechaty-puppet-wechat"
    puppet_options: Dict[str, Any] = Field(default_factory=dict)
    qr_code: bool = True
    media_max_mb: float = 25


def resolve_wechat_account(cfg: Optional[Mapping[str, Any]], account_id: Optional[str] = None) -> ResolvedWeChatAccount:
    """
    解析个人微信账号

    Raises:
        AccountNotFoundError: 账号不存在
        ConfigValidationError: 字段类型错误
    """
    resolved_id = account_id or "default"
    entry = get_account_entry(cfg, resolved_id, CHANNEL_LABEL)
    config = parse_account_config(WeChatAccountConfig, entry, resolved_id)

    return ResolvedWeChatAccount(
        id=resolved_id,
        name=config.name or f"WeChat {resolved_id}",
        puppet=config.puppet or get_settings().WECHAT_DEFAULT_PUPPET,
        puppet_options=dict(config.puppet_options or {}),
        qr_code=config.qr_code is not False,
        **common_resolved_fields(config),
    )


def validate_wechat_account_config(entry: Mapping[str, Any]) -> List[str]:
    """返回字段类型错误列表,空列表表示有效"""
    try:
        WeChatAccountConfig.model_validate(dict(entry))
    except ValidationError as e:
        return format_validation_errors(e)
    return []


def validate_wechat_config(cfg: Optional[Mapping[str, Any]]) -> Dict[str, List[str]]:
    accounts = (cfg or {}).get("accounts") or {}
    results = {}
    for account_id, entry in accounts.items():
        errors = validate_wechat_account_config(entry if isinstance(entry, dict) else {})
        if errors:
            results[account_id] = errors
    return results


def is_wechat_account_configured(account: ResolvedWeChatAccount) -> bool:
    return account.enabled
