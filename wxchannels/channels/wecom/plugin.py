"""
企业微信渠道插件

实现 BaseChannelPlugin 契约:
- 配置: 账号解析、默认账号、启停、allowFrom
- 出站: 文本(分片)、媒体(下载/上传后发送)
- 状态: 状态问题、探测、审计
- 网关: 启停账号
"""

import logging
import mimetypes
import os
import time
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlparse

from wxchannels.channels.accounts import get_accounts
from wxchannels.channels.base import (
    ChannelCapabilities,
    ChannelMessage,
    ChannelMeta,
    ChannelType,
    DirectoryEntry,
    OutboundResult,
)
from wxchannels.channels.plugin import AccountChannelPlugin
from wxchannels.channels.runtime import ChannelRuntime
from wxchannels.channels.wecom.accounts import (
    ResolvedWeComAccount,
    WeComAccountConfig,
    WeComApiType,
    is_wecom_account_configured,
    resolve_wecom_account,
    validate_wecom_config,
)
from wxchannels.channels.wecom.audit import WeComAuditResult, audit_wecom_account
from wxchannels.channels.wecom.bot import WeComBotManager
from wxchannels.channels.wecom.bot_handlers import is_event_message, wecom_message_to_channel_message
from wxchannels.channels.wecom.client import WeComApiClient
from wxchannels.channels.wecom.format import parse_wecom_target, wecom_normalizer
from wxchannels.channels.wecom.probe import WeComProbeResult, probe_wecom_connection
from wxchannels.channels.wecom.send import send_wecom_media, send_wecom_text, upload_wecom_media
from wxchannels.channels.wecom.targets import (
    get_all_wecom_targets,
    resolve_wecom_target,
    search_wecom_targets,
)
from wxchannels.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

WECOM_META = ChannelMeta(
    id=ChannelType.WECOM,
    label="WeChat Work",
    selection_label="WeChat Work (WeCom)",
    detail_label="WeCom Bot",
    docs_path="/channels/wecom",
    docs_label="wecom",
    blurb="WeChat Work enterprise channel with webhook support.",
    system_image="building.2",
    order=16,
    aliases=["we-chat-work", "qiye"],
)


def guess_media_type(name: str, content_type: Optional[str] = None) -> str:
    """按 MIME 类型推断企微素材类型(image/voice/video/file)"""
    mime = content_type or mimetypes.guess_type(name)[0] or ""
    if mime.startswith("image/"):
        return "image"
    if mime.startswith("audio/"):
        return "voice"
    if mime.startswith("video/"):
        return "video"
    return "file"


class WeComChannelPlugin(AccountChannelPlugin[ResolvedWeComAccount]):
    """企业微信渠道插件"""

    meta = WECOM_META
    capabilities = ChannelCapabilities()
    normalizer = wecom_normalizer
    target_hint = "<userId|departmentId|tagId>"

    def __init__(self, runtime: Optional[ChannelRuntime] = None, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        runtime = runtime or ChannelRuntime(
            lambda account: WeComApiClient(account, api_base_url=settings.WECOM_API_BASE_URL),
            settings=settings,
        )
        super().__init__(ChannelType.WECOM, runtime)
        self.bots = WeComBotManager(runtime.registry)

    # ---- config ----

    @property
    def config_schema(self) -> Dict[str, Any]:
        account_schema = WeComAccountConfig.model_json_schema(by_alias=True)
        definitions = account_schema.pop("$defs", {})
        schema = {
            "type": "object",
            "properties": {
                "accounts": {"type": "object", "additionalProperties": account_schema},
                "defaultAccountId": {"type": "string"},
            },
        }
        if definitions:
            schema["$defs"] = definitions
        return schema

    def resolve_account(self, cfg: Dict[str, Any], account_id: Optional[str] = None) -> ResolvedWeComAccount:
        return resolve_wecom_account(cfg, account_id)

    def is_configured(self, account: ResolvedWeComAccount) -> bool:
        return is_wecom_account_configured(account)

    def validate_config(self, cfg: Dict[str, Any]) -> Dict[str, List[str]]:
        return validate_wecom_config(cfg)

    # ---- directory ----

    async def directory_self(self, cfg: Dict[str, Any], account_id: Optional[str] = None) -> Optional[DirectoryEntry]:
        account = self.resolve_account(cfg, account_id)
        if not account.agent_id:
            return None
        return DirectoryEntry(id=account.agent_id, type="agent", name=account.name)

    async def resolve_target(
        self, cfg: Dict[str, Any], target: str, account_id: Optional[str] = None
    ) -> Optional[DirectoryEntry]:
        account = self.resolve_account(cfg, account_id)
        target_type, target_id = parse_wecom_target(target)
        return await resolve_wecom_target(self.bots.get_bot(account), target_id, target_type)

    async def list_peers(
        self, cfg: Dict[str, Any], account_id: Optional[str] = None, query: Optional[str] = None
    ) -> List[DirectoryEntry]:
        # TODO: 通过 /user/simplelist 按部门列出成员
        return []

    async def list_groups(
        self, cfg: Dict[str, Any], account_id: Optional[str] = None, query: Optional[str] = None
    ) -> List[DirectoryEntry]:
        account = self.resolve_account(cfg, account_id)
        bot = self.bots.get_bot(account)
        if query:
            return await search_wecom_targets(bot, query)
        return await get_all_wecom_targets(bot)

    # ---- outbound ----

    async def _deliver_text(self, account: ResolvedWeComAccount, target: str, text: str) -> str:
        target_type, target_id = parse_wecom_target(target)
        response = await send_wecom_text(self.bots.get_bot(account), target_id, text, target_type)
        return str(response.get("msgid") or f"wecom-{int(time.time() * 1000)}")

    async def send_media(
        self,
        cfg: Dict[str, Any],
        to: str,
        media_url: str,
        text: Optional[str] = None,
        account_id: Optional[str] = None,
        media_type: Optional[str] = None,
    ) -> OutboundResult:
        """
        发送媒体: 远程URL先下载,本地路径直接读取;上传为临时素材后发送,
        有 text 时再追加一条文本消息

        Raises:
            ValueError: 文件超过 media_max_mb
        """
        account = self.resolve_account(cfg, account_id)
        self._require_enabled(account)
        target_type, target_id = parse_wecom_target(to)
        bot = self.bots.get_bot(account)
        max_bytes = int(account.media_max_mb * 1024 * 1024)

        logger.info(f"[{self.label}] Sending media to {target_id} via account {account.id}")
        try:
            if urlparse(media_url).scheme in ("http", "https"):
                content, content_type = await bot.download_media(media_url, max_bytes=max_bytes)
                filename = os.path.basename(urlparse(media_url).path) or "media"
                kind = media_type or guess_media_type(filename, content_type)
                media_id = await upload_wecom_media(bot, kind, content=content, filename=filename)
            else:
                size = os.path.getsize(media_url)
                if size > max_bytes:
                    raise ValueError(f"Media too large: {size} bytes (limit {max_bytes})")
                kind = media_type or guess_media_type(media_url)
                media_id = await upload_wecom_media(bot, kind, file_path=media_url)

            response = await send_wecom_media(bot, target_id, kind, media_id, target_type)
            sent = 1
            if text:
                await send_wecom_text(bot, target_id, text, target_type)
                sent += 1
        except Exception as e:
            self.runtime.monitor.record_error(account.id, str(e))
            raise
        self.runtime.monitor.increment_sent(account.id, sent)

        return OutboundResult(
            message_id=str(response.get("msgid") or f"wecom-{int(time.time() * 1000)}"),
            channel=self.channel_type,
            account_id=account.id,
            chunks=sent,
            data={"media_id": media_id, "media_type": kind},
        )

    # ---- inbound ----

    async def handle_webhook_message(self, account: ResolvedWeComAccount, message: Mapping[str, Any]) -> ChannelMessage:
        """解密后的回调消息 -> ChannelMessage,并分发给已注册的处理函数"""
        channel_message = wecom_message_to_channel_message(message, account)
        if is_event_message(message):
            logger.info(f"WeCom event {message.get('Event')} from {channel_message.sender_id}")
        await self.dispatch_message(channel_message)
        return channel_message

    # ---- status ----

    async def collect_status_issues(self, account: ResolvedWeComAccount) -> List[str]:
        issues = []
        if not account.enabled:
            issues.append("Account is disabled")
        if not account.corp_id:
            issues.append("Missing Corp ID")
        if not account.agent_id:
            issues.append("Missing Agent ID")
        if not account.secret:
            issues.append("Missing Secret")
        if account.api_type == WeComApiType.WEBHOOK and not account.webhook_url:
            issues.append("Webhook URL required for webhook mode")
        return issues

    async def probe_account(self, account: ResolvedWeComAccount, timeout: Optional[float] = None) -> WeComProbeResult:
        timeout = timeout or self.runtime.settings.PROBE_TIMEOUT_SECONDS
        async with self.bots.borrow_bot(account) as bot:
            result = await probe_wecom_connection(bot, timeout=timeout)
        if result.error:
            self.runtime.monitor.record_error(account.id, result.error)
        return result

    async def audit_account(
        self,
        account: ResolvedWeComAccount,
        cfg: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> WeComAuditResult:
        entry = get_accounts(cfg).get(account.id) or {}
        async with self.bots.borrow_bot(account) as bot:
            return await audit_wecom_account(
                account,
                bot,
                config=entry,
                timeout=timeout or self.runtime.settings.AUDIT_TIMEOUT_SECONDS,
            )

    # ---- gateway ----

    async def start_account(self, cfg: Dict[str, Any], account_id: Optional[str] = None) -> Dict[str, Any]:
        account = self.resolve_account(cfg, account_id)
        logger.info(f"[{self.label}] Starting account {account.name}...")
        self.runtime.monitor.init(account.id)
        try:
            await self.bots.start_bot(account)
        except Exception as e:
            self.runtime.monitor.record_error(account.id, str(e))
            raise
        self.runtime.monitor.update_connection(account.id, True)
        self.runtime.monitor.set_webhook_active(
            account.id, account.api_type == WeComApiType.WEBHOOK and bool(account.webhook_url)
        )
        return {"started": True, "account_id": account.id}

    async def stop_account(self, account_id: str) -> Dict[str, Any]:
        logger.info(f"[{self.label}] Stopping account {account_id}...")
        await self.bots.stop_bot(account_id)
        self.runtime.monitor.update_connection(account_id, False)
        return {"stopped": True, "account_id": account_id}


# 全局插件实例
_wecom_plugin: Optional[WeComChannelPlugin] = None


def get_wecom_plugin() -> WeComChannelPlugin:
    """获取企业微信插件单例"""
    global _wecom_plugin
    if _wecom_plugin is None:
        _wecom_plugin = WeComChannelPlugin()
    return _wecom_plugin
