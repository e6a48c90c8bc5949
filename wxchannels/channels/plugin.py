"""
渠道插件公共实现

两个渠道共享的配置、策略、目标规范化和文本发送流程。
子类只需提供账号解析、单条消息投递、媒体发送、状态与启停。
"""

import logging
from abc import abstractmethod
from typing import Any, Dict, List, Optional

from wxchannels.channels import accounts as account_utils
from wxchannels.channels import policy
from wxchannels.channels.base import (
    AccountT,
    BaseChannelPlugin,
    ChannelNotConfiguredError,
    ChannelType,
    ChannelMessage,
    OutboundResult,
)
from wxchannels.channels.handlers import MessageHandler
from wxchannels.channels.runtime import ChannelRuntime
from wxchannels.channels.targets import TargetNormalizer
from wxchannels.channels.text import chunk_text

logger = logging.getLogger(__name__)


class AccountChannelPlugin(BaseChannelPlugin[AccountT]):
    """基于 accounts 映射的渠道插件"""

    normalizer: TargetNormalizer

    def __init__(self, channel_type: ChannelType, runtime: ChannelRuntime):
        super().__init__(channel_type)
        self.runtime = runtime

    @property
    def label(self) -> str:
        return self.meta.label

    # ---- config ----

    def list_account_ids(self, cfg: Dict[str, Any]) -> List[str]:
        return account_utils.list_account_ids(cfg)

    def default_account_id(self, cfg: Dict[str, Any]) -> str:
        return account_utils.default_account_id(cfg)

    def set_account_enabled(self, cfg: Dict[str, Any], account_id: str, enabled: bool) -> Dict[str, Any]:
        return account_utils.set_account_enabled(cfg, account_id, enabled)

    def delete_account(self, cfg: Dict[str, Any], account_id: str) -> Dict[str, Any]:
        return account_utils.delete_account(cfg, account_id)

    def resolve_allow_from(self, cfg: Dict[str, Any], account_id: Optional[str] = None) -> List[str]:
        return account_utils.resolve_allow_from(cfg, account_id)

    def format_allow_from(self, allow_from: List[Any]) -> List[str]:
        return self.normalizer.format_allow_from(allow_from)

    # ---- security / groups ----

    def resolve_dm_policy(self, cfg: Dict[str, Any], account_id: Optional[str] = None) -> str:
        return policy.resolve_dm_policy(cfg, account_id)

    def resolve_require_mention(self, cfg: Dict[str, Any], group_id: str) -> bool:
        return policy.resolve_require_mention(cfg, group_id)

    def resolve_tool_policy(self, *args: Any, **kwargs: Any) -> str:
        return policy.resolve_tool_policy(*args, **kwargs)

    # ---- messaging ----

    def normalize_target(self, target: str) -> str:
        return self.normalizer.normalize(target)

    def looks_like_id(self, target: str) -> bool:
        return self.normalizer.looks_like_id(target)

    # ---- inbound ----

    def register_message_handler(self, handler: MessageHandler) -> MessageHandler:
        return self.runtime.handlers.register(handler)

    async def dispatch_message(self, message: ChannelMessage) -> int:
        self.runtime.monitor.increment_received(message.account_id)
        return await self.runtime.handlers.dispatch(message)

    # ---- monitor ----

    def get_metrics(self, account_id: str) -> Optional[Dict[str, Any]]:
        return self.runtime.monitor.all().get(account_id)

    def list_metrics(self) -> Dict[str, Dict[str, Any]]:
        return self.runtime.monitor.all()

    # ---- outbound ----

    def _require_enabled(self, account: AccountT) -> None:
        if not account.enabled:
            raise ChannelNotConfiguredError(f"{self.label} account {account.id} is disabled")

    @abstractmethod
    async def _deliver_text(self, account: AccountT, target: str, text: str) -> str:
        """投递一条文本,返回消息ID"""
        pass

    async def send_text(
        self,
        cfg: Dict[str, Any],
        to: str,
        text: str,
        account_id: Optional[str] = None,
    ) -> OutboundResult:
        """
        发送文本,按账号的 text_chunk_limit / chunk_mode 分片

        Raises:
            AccountNotFoundError: 账号不存在
            ChannelNotConfiguredError: 账号已禁用
            TargetNotFoundError / CredentialError / TransportError: 投递失败
        """
        account = self.resolve_account(cfg, account_id)
        self._require_enabled(account)
        target = self.normalize_target(to)
        chunks = chunk_text(text, account.text_chunk_limit, account.chunk_mode)

        logger.info(f"[{self.label}] Sending text to {target} via account {account.id} ({len(chunks)} chunk(s))")
        message_id = ""
        try:
            for chunk in chunks:
                message_id = await self._deliver_text(account, target, chunk)
        except Exception as e:
            self.runtime.monitor.record_error(account.id, str(e))
            raise
        self.runtime.monitor.increment_sent(account.id, len(chunks))

        return OutboundResult(
            message_id=message_id,
            channel=self.channel_type,
            account_id=account.id,
            chunks=len(chunks),
        )
