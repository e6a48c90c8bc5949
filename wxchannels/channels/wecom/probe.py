"""企业微信连通性探测"""

import asyncio
import logging
import time

from wxchannels.channels.status import ProbeResult, elapsed_ms
from wxchannels.channels.wecom.client import WeComApiClient

logger = logging.getLogger(__name__)


class WeComProbeResult(ProbeResult):
    has_access_token: bool = False


async def probe_wecom_connection(bot: WeComApiClient, timeout: float = 5.0) -> WeComProbeResult:
    """获取 access token 检查连通性,不抛异常"""
    start = time.monotonic()
    try:
        await asyncio.wait_for(bot.get_access_token(), timeout=timeout)
    except asyncio.TimeoutError:
        return WeComProbeResult(latency_ms=elapsed_ms(start), error=f"Timed out after {timeout}s")
    except Exception as e:
        logger.debug(f"WeCom probe failed for account {bot.account.id}: {e}")
        return WeComProbeResult(latency_ms=elapsed_ms(start), error=str(e))
    return WeComProbeResult(connected=True, has_access_token=True, latency_ms=elapsed_ms(start))
