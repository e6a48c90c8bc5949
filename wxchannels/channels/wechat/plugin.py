"""
个人微信渠道插件

基于 Wechaty 会话实现 BaseChannelPlugin 契约,支持扫码登录。
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from wxchannels.channels.accounts import get_accounts
from wxchannels.channels.base import (
    ChannelCapabilities,
    ChannelMeta,
    ChannelType,
    DirectoryEntry,
    OutboundResult,
)
from wxchannels.channels.plugin import AccountChannelPlugin
from wxchannels.channels.runtime import ChannelRuntime
from wxchannels.channels.wechat.accounts import (
    ResolvedWeChatAccount,
    WeChatAccountConfig,
    is_wechat_account_configured,
    resolve_wechat_account,
    validate_wechat_config,
)
from wxchannels.channels.wechat.audit import WeChatAuditResult, audit_wechat_account
from wxchannels.channels.wechat.bot import WeChatBotManager
from wxchannels.channels.wechat.bot_handlers import setup_wechat_bot_handlers
from wxchannels.channels.wechat.format import wechat_normalizer
from wxchannels.channels.wechat.probe import WeChatProbeResult, probe_wechat_connection
from wxchannels.channels.wechat.send import send_wechat_media, send_wechat_text
from wxchannels.channels.wechat.session import WechatySession, create_wechaty_session
from wxchannels.channels.wechat.targets import (
    filter_targets,
    list_wechat_contacts,
    list_wechat_rooms,
    resolve_wechat_target,
)
from wxchannels.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

WECHAT_META = ChannelMeta(
    id=ChannelType.WECHAT,
    label="WeChat",
    selection_label="WeChat (Bot API)",
    detail_label="WeChat Bot",
    docs_path="/channels/wechat",
    docs_label="wechat",
    blurb="WeChat Official Bot API with QR login support.",
    system_image="message.circle",
    order=15,
    aliases=["wx", "weixin"],
)

SessionFactory = Callable[[ResolvedWeChatAccount], WechatySession]


class WeChatChannelPlugin(AccountChannelPlugin[ResolvedWeChatAccount]):
    """个人微信渠道插件"""

    meta = WECHAT_META
    capabilities = ChannelCapabilities()
    normalizer = wechat_normalizer
    target_hint = "<userId|roomId>"

    def __init__(
        self,
        runtime: Optional[ChannelRuntime] = None,
        settings: Optional[Settings] = None,
        session_factory: SessionFactory = create_wechaty_session,
    ):
        self._session_factory = session_factory
        runtime = runtime or ChannelRuntime(self._create_session, settings=settings or get_settings())
        super().__init__(ChannelType.WECHAT, runtime)
        self.bots = WeChatBotManager(runtime.registry)

    def _create_session(self, account: ResolvedWeChatAccount) -> WechatySession:
        session = self._session_factory(account)
        setup_wechat_bot_handlers(session, account, self.dispatch_message)
        session.add_state_listener(lambda logged_in: self.runtime.monitor.update_connection(account.id, logged_in))
        return session

    # ---- config ----

    @property
    def config_schema(self) -> Dict[str, Any]:
        account_schema = WeChatAccountConfig.model_json_schema(by_alias=True)
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

    def resolve_account(self, cfg: Dict[str, Any], account_id: Optional[str] = None) -> ResolvedWeChatAccount:
        return resolve_wechat_account(cfg, account_id)

    def is_configured(self, account: ResolvedWeChatAccount) -> bool:
        return is_wechat_account_configured(account)

    def validate_config(self, cfg: Dict[str, Any]) -> Dict[str, List[str]]:
        return validate_wechat_config(cfg)

    # ---- directory ----

    def _logged_in_bot(self, account_id: str) -> Optional[WechatySession]:
        bot = self.bots.peek_bot(account_id)
        return bot if bot is not None and bot.logged_in else None

    async def directory_self(self, cfg: Dict[str, Any], account_id: Optional[str] = None) -> Optional[DirectoryEntry]:
        account = self.resolve_account(cfg, account_id)
        bot = self._logged_in_bot(account.id)
        if bot is None or bot.user is None:
            return None
        return DirectoryEntry(id=bot.user.contact_id, type="contact", name=bot.user.name)

    async def resolve_target(
        self, cfg: Dict[str, Any], target: str, account_id: Optional[str] = None
    ) -> Optional[DirectoryEntry]:
        """目标 -> 群或联系人,未登录或找不到时返回 None"""
        account = self.resolve_account(cfg, account_id)
        bot = self._logged_in_bot(account.id)
        if bot is None:
            return None
        return await resolve_wechat_target(bot, self.normalize_target(target))

    async def list_peers(
        self, cfg: Dict[str, Any], account_id: Optional[str] = None, query: Optional[str] = None
    ) -> List[DirectoryEntry]:
        account = self.resolve_account(cfg, account_id)
        bot = self._logged_in_bot(account.id)
        if bot is None:
            return []
        entries = await list_wechat_contacts(bot)
        return filter_targets(entries, query) if query else entries

    async def list_groups(
        self, cfg: Dict[str, Any], account_id: Optional[str] = None, query: Optional[str] = None
    ) -> List[DirectoryEntry]:
        account = self.resolve_account(cfg, account_id)
        bot = self._logged_in_bot(account.id)
        if bot is None:
            return []
        entries = await list_wechat_rooms(bot)
        return filter_targets(entries, query) if query else entries

    # ---- outbound ----

    async def _deliver_text(self, account: ResolvedWeChatAccount, target: str, text: str) -> str:
        return await send_wechat_text(self.bots.get_bot(account), target, text)

    async def send_media(
        self,
        cfg: Dict[str, Any],
        to: str,
        media_url: str,
        text: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> OutboundResult:
        account = self.resolve_account(cfg, account_id)
        self._require_enabled(account)
        target = self.normalize_target(to)

        logger.info(f"[{self.label}] Sending media to {target} via account {account.id}")
        try:
            message_id = await send_wechat_media(self.bots.get_bot(account), target, media_url, text)
        except Exception as e:
            self.runtime.monitor.record_error(account.id, str(e))
            raise
        sent = 2 if text else 1
        self.runtime.monitor.increment_sent(account.id, sent)
        return OutboundResult(message_id=message_id, channel=self.channel_type, account_id=account.id, chunks=sent)

    # ---- status ----

    async def collect_status_issues(self, account: ResolvedWeChatAccount) -> List[str]:
        return [] if account.enabled else ["Account is disabled"]

    async def probe_account(self, account: ResolvedWeChatAccount, timeout: Optional[float] = None) -> WeChatProbeResult:
        return await probe_wechat_connection(
            self.bots.peek_bot(account.id),
            timeout=timeout or self.runtime.settings.PROBE_TIMEOUT_SECONDS,
        )

    async def audit_account(
        self,
        account: ResolvedWeChatAccount,
        cfg: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> WeChatAuditResult:
        return await audit_wechat_account(
            account,
            self.bots.peek_bot(account.id),
            config=get_accounts(cfg).get(account.id) or {},
            timeout=timeout or self.runtime.settings.AUDIT_TIMEOUT_SECONDS,
        )

    # ---- gateway ----

    async def start_account(self, cfg: Dict[str, Any], account_id: Optional[str] = None) -> Dict[str, Any]:
        account = self.resolve_account(cfg, account_id)
        logger.info(f"[{self.label}] Starting account {account.name}...")
        if self.runtime.monitor.get(account.id) is None:
            self.runtime.monitor.init(account.id)
        try:
            bot = await self.bots.start_bot(account)
        except Exception as e:
            self.runtime.monitor.record_error(account.id, str(e))
            raise
        return {"started": True, "account_id": account.id, "logged_in": bot.logged_in}

    async def stop_account(self, account_id: str) -> Dict[str, Any]:
        logger.info(f"[{self.label}] Stopping account {account_id}...")
        await self.bots.stop_bot(account_id)
        self.runtime.monitor.update_connection(account_id, False)
        return {"stopped": True, "account_id": account_id}

    async def login_with_qr_start(self, cfg: Dict[str, Any], account_id: Optional[str] = None) -> Dict[str, Any]:
        """
        启动会话并返回当前二维码

        二维码通过 scan 事件异步到达,刚启动时 qr_code 可能为 None,
        调用方可随后调用 login_with_qr_wait。
        """
        account = self.resolve_account(cfg, account_id)
        logger.info(f"[{self.label}] Starting QR login for account {account.id}...")
        bot = await self.bots.start_bot(account)
        return {
            "account_id": account.id,
            "logged_in": bot.logged_in,
            "qr_code": bot.qr_code,
            "qr_url": bot.qr_url(),
        }

    async def login_with_qr_wait(
        self,
        cfg: Dict[str, Any],
        account_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        account = self.resolve_account(cfg, account_id)
        bot = self.bots.peek_bot(account.id)
        if bot is None:
            return {"account_id": account.id, "logged_in": False, "pending": False, "error": "Bot not started"}

        logger.info(f"[{self.label}] Waiting for QR scan for account {account.id}...")
        logged_in = await bot.wait_for_login(timeout or self.runtime.settings.WECHAT_QR_WAIT_SECONDS)
        return {
            "account_id": account.id,
            "logged_in": logged_in,
            "pending": not logged_in,
            "qr_url": None if logged_in else bot.qr_url(),
        }

    async def logout_account(self, account_id: str) -> Dict[str, Any]:
        logger.info(f"[{self.label}] Logging out account {account_id}...")
        logged_out = await self.bots.logout_bot(account_id)
        return {"logged_out": logged_out, "account_id": account_id}


# 全局插件实例
_wechat_plugin: Optional[WeChatChannelPlugin] = None


def get_wechat_plugin() -> WeChatChannelPlugin:
    """获取个人微信插件单例"""
    global _wechat_plugin
    if _wechat_plugin is None:
        _wechat_plugin = WeChatChannelPlugin()
    return _wechat_plugin
