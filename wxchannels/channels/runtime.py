"""插件运行时: 实例注册表 + 指标 + 消息处理函数"""

from typing import Callable, Generic, Optional, TypeVar

from wxchannels.channels.handlers import MessageHandlerRegistry
from wxchannels.channels.monitor import ChannelMonitor
from wxchannels.channels.registry import InstanceRegistry
from wxchannels.config.settings import Settings, get_settings

A = TypeVar("A")
T = TypeVar("T")


class ChannelRuntime(Generic[A, T]):
    """一个插件实例拥有的全部可变状态"""

    def __init__(
        self,
        factory: Callable[[A], T],
        settings: Optional[Settings] = None,
        monitor: Optional[ChannelMonitor] = None,
        handlers: Optional[MessageHandlerRegistry] = None,
    ):
        self.settings = settings or get_settings()
        self.registry: InstanceRegistry[A, T] = InstanceRegistry(factory)
        self.monitor = monitor or ChannelMonitor()
        self.handlers = handlers or MessageHandlerRegistry()
