"""
个人微信会话生命周期

每个账号一个 WechatySession,由 InstanceRegistry 延迟创建。
"""

import logging
from typing import Optional

from wxchannels.channels.registry import InstanceRegistry
from wxchannels.channels.wechat.accounts import ResolvedWeChatAccount
from wxchannels.channels.wechat.session import WechatySession

logger = logging.getLogger(__name__)


class WeChatBotManager:
    """账号 -> Wechaty 会话"""

    def __init__(self, registry: InstanceRegistry[ResolvedWeChatAccount, WechatySession]):
        self.registry = registry

    def get_bot(self, account: ResolvedWeChatAccount) -> WechatySession:
        return self.registry.get(account)

    def peek_bot(self, account_id: str) -> Optional[WechatySession]:
        return self.registry.peek(account_id)

    def has_bot(self, account_id: str) -> bool:
        return self.registry.has(account_id)

    def remove_bot(self, account_id: str) -> Optional[WechatySession]:
        return self.registry.remove(account_id)

    async def start_bot(self, account: ResolvedWeChatAccount) -> WechatySession:
        """已登录时不重复启动"""
        bot = self.get_bot(account)
        if bot.logged_in:
            return bot
        await bot.start()
        logger.info(f"[WeChat] Bot for account {account.id} started")
        return bot

    async def stop_bot(self, account_id: str) -> None:
        """已登录或仍在运行(等待扫码)时先停止,然后无条件移除"""
        bot = self.registry.peek(account_id)
        if bot is None:
            return
        try:
            if bot.logged_in or bot.running:
                await bot.stop()
        finally:
            self.remove_bot(account_id)
        logger.info(f"[WeChat] Bot for account {account_id} stopped")

    async def logout_bot(self, account_id: str) -> bool:
        """登出(会话保留,可重新扫码)"""
        bot = self.registry.peek(account_id)
        if bot is None or not bot.logged_in:
            return False
        await bot.logout()
        return True
