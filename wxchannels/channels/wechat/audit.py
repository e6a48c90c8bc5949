"""个人微信账号审计"""

from typing import Any, Mapping, Optional

from wxchannels.channels.status import AuditResult, format_audit_summary
from wxchannels.channels.wechat.accounts import ResolvedWeChatAccount, validate_wechat_account_config
from wxchannels.channels.wechat.probe import probe_wechat_connection
from wxchannels.channels.wechat.session import WechatySession


class WeChatAuditResult(AuditResult):
    logged_in: bool = False


async def audit_wechat_account(
    account: ResolvedWeChatAccount,
    bot: Optional[WechatySession],
    config: Optional[Mapping[str, Any]] = None,
    timeout: float = 10.0,
) -> WeChatAuditResult:
    validation_errors = validate_wechat_account_config(config or {})
    audit = WeChatAuditResult(errors=list(validation_errors))

    if not account.enabled:
        audit.info.append("Account is disabled")
        audit.configured = not validation_errors
        return audit

    probe = await probe_wechat_connection(bot, timeout=timeout)
    if probe.error:
        audit.errors.append(f"Connection error: {probe.error}")
    if not probe.connected:
        audit.warnings.append("Bot is not connected to WeChat")
    if probe.logged_in:
        audit.info.append("User is logged in")
    else:
        audit.warnings.append("User is not logged in")
    if account.qr_code:
        audit.info.append("QR code login is enabled")

    audit.configured = not validation_errors and not audit.errors
    audit.reachable = probe.connected
    audit.logged_in = probe.logged_in
    return audit


def generate_wechat_audit_summary(audit: WeChatAuditResult) -> str:
    return format_audit_summary(audit, f"Logged In: {'Yes' if audit.logged_in else 'No'}")
