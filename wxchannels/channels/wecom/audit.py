"""企业微信账号审计"""

import logging
from typing import Any, Mapping, Optional

from wxchannels.channels.status import AuditResult, format_audit_summary
from wxchannels.channels.wecom.accounts import (
    ResolvedWeComAccount,
    WeComApiType,
    validate_wecom_account_config,
)
from wxchannels.channels.wecom.client import WeComApiClient
from wxchannels.channels.wecom.probe import probe_wecom_connection

logger = logging.getLogger(__name__)


class WeComAuditResult(AuditResult):
    has_valid_credentials: bool = False


async def audit_wecom_account(
    account: ResolvedWeComAccount,
    bot: WeComApiClient,
    config: Optional[Mapping[str, Any]] = None,
    timeout: float = 10.0,
) -> WeComAuditResult:
    """
    审计账号配置与连通性

    Args:
        account: 已解析账号
        bot: 账号对应的客户端
        config: 原始账号配置(用于完整性校验)
        timeout: 探测超时(秒)
    """
    validation_errors = validate_wecom_account_config(config or {})
    audit = WeComAuditResult(errors=list(validation_errors))

    if not account.enabled:
        audit.info.append("Account is disabled")
        audit.configured = not validation_errors
        return audit

    if not account.corp_id:
        audit.add_error("corpId is required")
    if not account.agent_id:
        audit.add_error("agentId is required")
    if not account.secret and not account.access_token:
        audit.warnings.append("No secret or access token provided")

    probe = await probe_wecom_connection(bot, timeout=timeout)
    if probe.error:
        audit.errors.append(f"Connection error: {probe.error}")
    if not probe.connected:
        audit.warnings.append("Bot is not connected to WeCom")
    if probe.has_access_token:
        audit.info.append("Access token is valid")

    if account.api_type == WeComApiType.WEBHOOK:
        if account.webhook_url:
            audit.info.append("Webhook mode configured")
        else:
            audit.warnings.append("Webhook URL not configured")
    elif account.api_type == WeComApiType.CALLBACK:
        if account.callback_url:
            audit.info.append("Callback mode configured")
        else:
            audit.warnings.append("Callback URL not configured")

    audit.configured = not validation_errors and not audit.errors
    audit.reachable = probe.connected
    audit.has_valid_credentials = probe.has_access_token
    return audit


def generate_wecom_audit_summary(audit: WeComAuditResult) -> str:
    return format_audit_summary(audit, f"Valid Credentials: {'Yes' if audit.has_valid_credentials else 'No'}")
