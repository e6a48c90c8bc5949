"""账号运行指标"""

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class MonitorMetrics:
    account_id: str
    connected: bool = False
    messages_received: int = 0
    messages_sent: int = 0
    last_message_time: Optional[float] = None
    last_error: Optional[str] = None
    webhook_active: Optional[bool] = None  # 仅企业微信使用


class ChannelMonitor:
    """按账号记录连接状态、收发计数和最近错误"""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._metrics: Dict[str, MonitorMetrics] = {}

    def init(self, account_id: str, **fields: Any) -> MonitorMetrics:
        metrics = MonitorMetrics(account_id=account_id, **fields)
        self._metrics[account_id] = metrics
        return metrics

    def _get_or_init(self, account_id: str) -> MonitorMetrics:
        metrics = self._metrics.get(account_id)
        if metrics is None:
            metrics = self.init(account_id)
        return metrics

    def get(self, account_id: str) -> Optional[MonitorMetrics]:
        return self._metrics.get(account_id)

    def update_connection(self, account_id: str, connected: bool) -> None:
        metrics = self._get_or_init(account_id)
        metrics.connected = connected
        if connected:
            metrics.last_error = None

    def set_webhook_active(self, account_id: str, active: bool) -> None:
        self._get_or_init(account_id).webhook_active = active

    def increment_received(self, account_id: str) -> None:
        metrics = self._get_or_init(account_id)
        metrics.messages_received += 1
        metrics.last_message_time = self._clock()

    def increment_sent(self, account_id: str, count: int = 1) -> None:
        self._get_or_init(account_id).messages_sent += count

    def record_error(self, account_id: str, error: str) -> None:
        metrics = self._get_or_init(account_id)
        metrics.last_error = error
        metrics.connected = False
        logger.warning(f"Account {account_id} error: {error}")

    def all(self) -> Dict[str, Dict[str, Any]]:
        return {account_id: asdict(m) for account_id, m in self._metrics.items()}

    def remove(self, account_id: str) -> None:
        self._metrics.pop(account_id, None)
