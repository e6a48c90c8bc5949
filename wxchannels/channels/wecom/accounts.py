"""
企业微信账号解析

原始配置 -> WeComAccountConfig(pydantic 校验) -> ResolvedWeComAccount(全部字段有默认值)。
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import Field, ValidationError

from wxchannels.channels.accounts import (
    BaseAccountConfig,
    common_resolved_fields,
    format_validation_errors,
    get_account_entry,
    parse_account_config,
)
from wxchannels.channels.base import BaseResolvedAccount, ConfigValidationError

logger = logging.getLogger(__name__)

CHANNEL_LABEL = "WeCom"


class WeComApiType(str, Enum):
    """入站消息接收方式"""
    WEBHOOK = "webhook"
    CALLBACK = "callback"


class WeComAccountConfig(BaseAccountConfig):
    """企业微信原始账号配置"""
    corp_id: Optional[str] = None
    agent_id: Optional[Union[int, str]] = None
    secret: Optional[str] = None
    secret_file: Optional[str] = None
    access_token: Optional[str] = None
    access_token_file: Optional[str] = None
    api_type: Optional[WeComApiType] = None
    webhook_url: Optional[str] = None
    webhook_token: Optional[str] = None
    encoding_aes_key: Optional[str] = Field(None, alias="encodingAESKey")
    callback_url: Optional[str] = None
    verify_ssl: Optional[bool] = None


class ResolvedWeComAccount(BaseResolvedAccount):
    """已解析的企业微信账号"""
    corp_id: str = ""
    agent_id: str = ""
    secret: str = ""
    access_token: str = ""
    api_type: WeComApiType = WeComApiType.WEBHOOK
    webhook_url: Optional[str] = None
    webhook_token: Optional[str] = None
    encoding_aes_key: Optional[str] = None
    callback_url: Optional[str] = None
    verify_ssl: bool = True
    media_max_mb: float = 20


def _read_secret_file(path: str, field: str, account_id: str) -> str:
    try:
        return Path(path).expanduser().read_text(encoding="utf-8").strip()
    except OSError as e:
        raise ConfigValidationError(
            f"Invalid configuration for account {account_id}: cannot read {field} {path}: {e}",
            errors=[f"{field}: {e}"],
        )


def resolve_wecom_account(cfg: Optional[Mapping[str, Any]], account_id: Optional[str] = None) -> ResolvedWeComAccount:
    """
    解析企业微信账号

    Raises:
        AccountNotFoundError: 账号不存在
        ConfigValidationError: 字段类型错误或凭证文件不可读
    """
    resolved_id = account_id or "default"
    entry = get_account_entry(cfg, resolved_id, CHANNEL_LABEL)
    config = parse_account_config(WeComAccountConfig, entry, resolved_id)

    secret = config.secret
    if not secret and config.secret_file:
        secret = _read_secret_file(config.secret_file, "secretFile", resolved_id)
    access_token = config.access_token
    if not access_token and config.access_token_file:
        access_token = _read_secret_file(config.access_token_file, "accessTokenFile", resolved_id)

    fields = common_resolved_fields(config)
    if config.verify_ssl is not None:
        fields["verify_ssl"] = config.verify_ssl
    if config.api_type is not None:
        fields["api_type"] = config.api_type

    return ResolvedWeComAccount(
        id=resolved_id,
        name=config.name or f"WeCom {resolved_id}",
        corp_id=config.corp_id or "",
        agent_id=str(config.agent_id) if config.agent_id not in (None, "", 0) else "",
        secret=secret or "",
        access_token=access_token or "",
        webhook_url=config.webhook_url,
        webhook_token=config.webhook_token,
        encoding_aes_key=config.encoding_aes_key,
        callback_url=config.callback_url,
        **fields,
    )


def validate_wecom_account_config(entry: Mapping[str, Any]) -> List[str]:
    """
    校验原始账号配置的完整性

    Returns:
        错误信息列表,空列表表示配置有效
    """
    try:
        config = WeComAccountConfig.model_validate(dict(entry))
    except ValidationError as e:
        return format_validation_errors(e)

    errors = []
    if not config.corp_id:
        errors.append("corpId is required")
    if not config.agent_id and not config.secret and not config.access_token:
        errors.append("Either agentId+secret or accessToken is required")
    if config.api_type == WeComApiType.WEBHOOK and not config.webhook_url:
        errors.append("webhookUrl is required when apiType is 'webhook'")
    if config.api_type == WeComApiType.CALLBACK and not config.callback_url:
        errors.append("callbackUrl is required when apiType is 'callback'")
    return errors


def validate_wecom_config(cfg: Optional[Mapping[str, Any]]) -> Dict[str, List[str]]:
    """校验所有账号,返回 {account_id: errors},只包含有错误的账号"""
    accounts = (cfg or {}).get("accounts") or {}
    results = {}
    for account_id, entry in accounts.items():
        errors = validate_wecom_account_config(entry if isinstance(entry, dict) else {})
        if errors:
            results[account_id] = errors
    return results


def is_wecom_account_configured(account: ResolvedWeComAccount) -> bool:
    return bool(account.enabled and account.corp_id and account.agent_id and account.secret)
