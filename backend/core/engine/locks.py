"""
core/engine/locks.py

按键加锁的注册表 - 用于把同一资源上的“检查-写入”序列串行化

每个键一把锁，获取锁有超时上限，不会无限期阻塞。
"""
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator
import logging
import threading

logger = logging.getLogger(__name__)


class LockTimeout(TimeoutError):
    """在超时时间内未能获取锁"""

    def __init__(self, key: Hashable, timeout: float):
        self.key = key
        self.timeout = timeout
        super().__init__(f"Could not acquire lock for {key!r} within {timeout}s")


class KeyedLockRegistry:
    """
    键控锁注册表（线程安全）

    Example:
        >>> locks = KeyedLockRegistry()
        >>> with locks.hold(("seat", 1), timeout=1.0):
        ...     pass
    """

    def __init__(self):
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _get_lock(self, key: Hashable) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable, timeout: float) -> Iterator[None]:
        """
        持有某个键的锁

        Raises:
            LockTimeout: 超时未获取到锁
        """
        lock = self._get_lock(key)
        if not lock.acquire(timeout=timeout):
            logger.warning(f"Lock timeout for {key!r} after {timeout}s")
            raise LockTimeout(key, timeout)
        try:
            yield
        finally:
            lock.release()

    def discard(self, key: Hashable) -> bool:
        """移除某个键的锁；锁正被持有时保留，返回是否已移除"""
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None or lock.locked():
                return False
            del self._locks[key]
            return True

    def __contains__(self, key: Hashable) -> bool:
        with self._registry_lock:
            return key in self._locks

    def is_locked(self, key: Hashable) -> bool:
        with self._registry_lock:
            lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def clear(self) -> None:
        """丢弃全部锁（仅用于测试，调用时不应有持有者）"""
        with self._registry_lock:
            self._locks.clear()


# 全局座位分配锁
allocation_locks = KeyedLockRegistry()


__all__ = ["LockTimeout", "KeyedLockRegistry", "allocation_locks"]
