"""个人微信会话探测"""

import asyncio
import logging
import time
from typing import Optional

from wxchannels.channels.status import ProbeResult, elapsed_ms
from wxchannels.channels.wechat.session import WechatySession

logger = logging.getLogger(__name__)


class WeChatProbeResult(ProbeResult):
    logged_in: bool = False


async def probe_wechat_connection(bot: Optional[WechatySession], timeout: float = 5.0) -> WeChatProbeResult:
    """
    检查会话状态,已登录时查询一次自身联系人作为 ping

    不抛异常
    """
    start = time.monotonic()
    if bot is None:
        return WeChatProbeResult(latency_ms=elapsed_ms(start), error="Bot not started")
    if not bot.logged_in:
        return WeChatProbeResult(connected=bot.running, latency_ms=elapsed_ms(start), error="Not logged in")
    if bot.user is None:
        return WeChatProbeResult(latency_ms=elapsed_ms(start), error="No current user")

    try:
        await asyncio.wait_for(bot.find_contact(bot.user.contact_id), timeout=timeout)
    except asyncio.TimeoutError:
        return WeChatProbeResult(logged_in=True, latency_ms=elapsed_ms(start), error=f"Timed out after {timeout}s")
    except Exception as e:
        logger.debug(f"WeChat probe failed for account {bot.account.id}: {e}")
        return WeChatProbeResult(logged_in=True, latency_ms=elapsed_ms(start), error=str(e))
    return WeChatProbeResult(connected=True, logged_in=True, latency_ms=elapsed_ms(start))
