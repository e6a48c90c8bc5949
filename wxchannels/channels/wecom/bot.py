"""
企业微信客户端生命周期

每个账号一个 WeComApiClient,由 InstanceRegistry 延迟创建。
创建时不校验凭证,start_bot 通过强制获取一次 token 检查连通性。
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from wxchannels.channels.registry import InstanceRegistry
from wxchannels.channels.wecom.accounts import ResolvedWeComAccount
from wxchannels.channels.wecom.client import WeComApiClient

logger = logging.getLogger(__name__)


class WeComBotManager:
    """账号 -> 客户端"""

    def __init__(self, registry: InstanceRegistry[ResolvedWeComAccount, WeComApiClient]):
        self.registry = registry

    def get_bot(self, account: ResolvedWeComAccount) -> WeComApiClient:
        return self.registry.get(account)

    @asynccontextmanager
    async def borrow_bot(self, account: ResolvedWeComAccount) -> AsyncIterator[WeComApiClient]:
        """
        使用已登记的客户端;未登记时创建临时客户端,用完关闭,不写入注册表

        探测和审计通过它访问接口,不会为未启动的账号留下实例
        """
        bot = self.registry.peek(account.id)
        if bot is not None:
            yield bot
            return
        bot = self.registry.create(account)
        try:
            yield bot
        finally:
            await bot.aclose()

    def has_bot(self, account_id: str) -> bool:
        return self.registry.has(account_id)

    def remove_bot(self, account_id: str) -> Optional[WeComApiClient]:
        return self.registry.remove(account_id)

    async def start_bot(self, account: ResolvedWeComAccount) -> WeComApiClient:
        """
        启动账号: 强制获取一次 access token

        Raises:
            CredentialError / TransportError: 连通性检查失败
        """
        bot = self.get_bot(account)
        await bot.get_access_token(force_refresh=True)
        logger.info(f"✅ WeCom account {account.id} connected (corp_id={account.corp_id})")
        return bot

    async def stop_bot(self, account_id: str) -> None:
        bot = self.remove_bot(account_id)
        if bot is not None:
            await bot.aclose()
            logger.info(f"WeCom account {account_id} stopped")
