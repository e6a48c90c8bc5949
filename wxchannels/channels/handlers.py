"""
入站消息分发

插件把平台消息转换成 ChannelMessage 后交给这里,由宿主注册的处理函数消费。
"""

import inspect
import logging
from typing import Awaitable, Callable, List, Union

from wxchannels.channels.base import ChannelMessage

logger = logging.getLogger(__name__)

MessageHandler = Callable[[ChannelMessage], Union[None, Awaitable[None]]]


class MessageHandlerRegistry:
    """处理函数注册表,单个处理函数失败不影响其他处理函数"""

    def __init__(self):
        self._handlers: List[MessageHandler] = []

    def register(self, handler: MessageHandler) -> MessageHandler:
        """注册处理函数(可作为装饰器使用)"""
        self._handlers.append(handler)
        return handler

    def unregister(self, handler: MessageHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def __len__(self) -> int:
        return len(self._handlers)

    async def dispatch(self, message: ChannelMessage) -> int:
        """
        依次调用所有处理函数

        Returns:
            成功执行的处理函数数量
        """
        succeeded = 0
        for handler in list(self._handlers):
            try:
                result = handler(message)
                if inspect.isawaitable(result):
                    await result
                succeeded += 1
            except Exception as e:
                logger.error(
                    f"Message handler {getattr(handler, '__name__', handler)} failed "
                    f"for {message.channel}/{message.account_id}: {e}",
                    exc_info=True,
                )
        return succeeded
