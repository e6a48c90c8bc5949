"""
账号配置通用工具

原始配置形如 {"accounts": {"<id>": {...}}, "defaultAccountId": "..."},
由宿主以 dict 形式传入。这里的函数都是纯函数,只有
set_account_enabled / delete_account 会修改传入的 dict。
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from wxchannels.channels.base import (
    AccountNotFoundError,
    ChunkMode,
    ConfigValidationError,
    DmPolicy,
    GroupPolicy,
)

logger = logging.getLogger(__name__)

DEFAULT_ACCOUNT_ID = "default"


class BaseAccountConfig(BaseModel):
    """
    原始账号配置的公共字段

    字段使用宿主的 camelCase 拼写;未知键(retry、markdown、heartbeat 等)
    原样保留,已知键类型错误时报错。
    """
    enabled: Optional[bool] = None
    name: Optional[str] = None
    dm_policy: Optional[DmPolicy] = None
    group_policy: Optional[GroupPolicy] = None
    allow_from: Optional[List[Union[str, int]]] = None
    group_allow_from: Optional[List[Union[str, int]]] = None
    groups: Optional[Dict[str, Dict[str, Any]]] = None
    history_limit: Optional[int] = None
    dm_history_limit: Optional[int] = None
    text_chunk_limit: Optional[int] = None
    chunk_mode: Optional[ChunkMode] = None
    block_streaming: Optional[bool] = None
    media_max_mb: Optional[float] = None
    timeout_seconds: Optional[float] = None
    proxy: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


ConfigT = TypeVar("ConfigT", bound=BaseAccountConfig)


def format_validation_errors(error: ValidationError) -> List[str]:
    """把 pydantic 校验错误转换成 "field: message" 形式"""
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        messages.append(f"{location}: {item.get('msg')}" if location else item.get("msg", ""))
    return messages


def parse_account_config(model: Type[ConfigT], entry: Mapping[str, Any], account_id: str) -> ConfigT:
    """
    解析原始账号配置

    Raises:
        ConfigValidationError: 已知字段类型错误
    """
    try:
        return model.model_validate(dict(entry))
    except ValidationError as e:
        errors = format_validation_errors(e)
        raise ConfigValidationError(
            f"Invalid configuration for account {account_id}: " + "; ".join(errors),
            errors=errors,
        )


def common_resolved_fields(config: BaseAccountConfig) -> Dict[str, Any]:
    """两个渠道共享字段的默认值填充"""
    fields: Dict[str, Any] = {
        "enabled": config.enabled is not False,
        "allow_from": [str(item) for item in config.allow_from or []],
        "group_allow_from": [str(item) for item in config.group_allow_from or []],
        "groups": dict(config.groups or {}),
        "proxy": config.proxy,
    }
    optional = {
        "dm_policy": config.dm_policy,
        "group_policy": config.group_policy,
        "history_limit": config.history_limit,
        "dm_history_limit": config.dm_history_limit,
        "text_chunk_limit": config.text_chunk_limit,
        "chunk_mode": config.chunk_mode,
        "block_streaming": config.block_streaming,
        "media_max_mb": config.media_max_mb,
        "timeout_seconds": config.timeout_seconds,
    }
    fields.update({key: value for key, value in optional.items() if value is not None})
    return fields


def get_accounts(cfg: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """返回 accounts 映射(缺失或类型不对时返回空 dict)"""
    if not cfg:
        return {}
    accounts = cfg.get("accounts")
    return accounts if isinstance(accounts, dict) else {}


def list_account_ids(cfg: Optional[Mapping[str, Any]]) -> List[str]:
    """列出未被显式禁用的账号ID(保持配置中的顺序)"""
    return [
        account_id
        for account_id, entry in get_accounts(cfg).items()
        if not (isinstance(entry, dict) and entry.get("enabled") is False)
    ]


def default_account_id(cfg: Optional[Mapping[str, Any]]) -> str:
    """
    默认账号ID

    - 没有账号: "default"
    - 只有一个: 该账号
    - 多个: cfg["defaultAccountId"],未设置时取第一个
    """
    ids = list_account_ids(cfg)
    if not ids:
        return DEFAULT_ACCOUNT_ID
    if len(ids) == 1:
        return ids[0]
    configured = (cfg or {}).get("defaultAccountId")
    return configured or ids[0]


def get_account_entry(
    cfg: Optional[Mapping[str, Any]],
    account_id: Optional[str],
    channel_label: str,
) -> Dict[str, Any]:
    """
    取出原始账号配置

    Raises:
        AccountNotFoundError: accounts 中没有该ID
    """
    resolved_id = account_id or DEFAULT_ACCOUNT_ID
    entry = get_accounts(cfg).get(resolved_id)
    if not isinstance(entry, dict):
        raise AccountNotFoundError(channel_label, resolved_id)
    return entry


def set_account_enabled(cfg: Dict[str, Any], account_id: str, enabled: bool) -> Dict[str, Any]:
    """启用/禁用账号,账号不存在时创建空条目"""
    accounts = cfg.get("accounts")
    if not isinstance(accounts, dict):
        accounts = {}
        cfg["accounts"] = accounts
    entry = accounts.setdefault(account_id, {})
    entry["enabled"] = enabled
    logger.info(f"Account {account_id} {'enabled' if enabled else 'disabled'}")
    return cfg


def delete_account(cfg: Dict[str, Any], account_id: str) -> Dict[str, Any]:
    """删除账号(不存在时无操作)"""
    accounts = cfg.get("accounts")
    if isinstance(accounts, dict) and accounts.pop(account_id, None) is not None:
        logger.info(f"Account {account_id} deleted")
    return cfg


def resolve_allow_from(cfg: Optional[Mapping[str, Any]], account_id: Optional[str] = None) -> List[str]:
    """账号的 allowFrom 列表(原样返回,格式化交给渠道的 format_allow_from)"""
    entry = get_accounts(cfg).get(account_id or DEFAULT_ACCOUNT_ID)
    if not isinstance(entry, dict):
        return []
    allow_from = entry.get("allowFrom") or []
    return [str(item) for item in allow_from]


__all__ = [
    "DEFAULT_ACCOUNT_ID",
    "BaseAccountConfig",
    "format_validation_errors",
    "parse_account_config",
    "common_resolved_fields",
    "get_accounts",
    "list_account_ids",
    "default_account_id",
    "get_account_entry",
    "set_account_enabled",
    "delete_account",
    "resolve_allow_from",
]
