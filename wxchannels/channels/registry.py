"""
账号实例注册表

每个账号ID对应一个延迟创建的客户端/会话实例。注册表属于 ChannelRuntime,
不使用模块级全局变量,测试可以各自构建独立的注册表。
"""

import logging
from typing import Callable, Dict, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

A = TypeVar("A")
T = TypeVar("T")


class InstanceRegistry(Generic[A, T]):
    """account id -> instance,首次 get 时通过 factory 创建"""

    def __init__(self, factory: Callable[[A], T], key: Callable[[A], str] = lambda account: account.id):
        self._factory = factory
        self._key = key
        self._instances: Dict[str, T] = {}

    def get(self, account: A) -> T:
        account_id = self._key(account)
        instance = self._instances.get(account_id)
        if instance is None:
            instance = self._factory(account)
            self._instances[account_id] = instance
            logger.debug(f"Created instance for account {account_id}")
        return instance

    def create(self, account: A) -> T:
        """创建实例但不登记"""
        return self._factory(account)

    def peek(self, account_id: str) -> Optional[T]:
        return self._instances.get(account_id)

    def has(self, account_id: str) -> bool:
        return account_id in self._instances

    def remove(self, account_id: str) -> Optional[T]:
        """移除实例(幂等),返回被移除的实例"""
        instance = self._instances.pop(account_id, None)
        if instance is not None:
            logger.debug(f"Removed instance for account {account_id}")
        return instance

    def ids(self) -> List[str]:
        return list(self._instances)

    def clear(self) -> None:
        self._instances.clear()

    def __len__(self) -> int:
        return len(self._instances)
