# services/locks.py
"""
Per-key locks for the services that must serialize work on one user or one
collection while leaving other keys free.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List


class KeyedLocks:
     """
     One lock per key, created on first use and dropped once no thread holds
     or waits on it, so the registry only tracks keys that are in use.
     """

     def __init__(self) -> None:
          self._guard = threading.Lock()
          # key -> [lock, holders and waiters]
          self._entries: Dict[str, List] = {}

     @contextmanager
     def hold(self, key: str) -> Iterator[None]:
          with self._guard:
               entry = self._entries.get(key)
               if entry is None:
                    entry = self._entries[key] = [threading.Lock(), 0]
               entry[1] += 1
          try:
               with entry[0]:
                    yield
          finally:
               with self._guard:
                    entry[1] -= 1
                    if entry[1] == 0:
                         del self._entries[key]

     def __len__(self) -> int:
          with self._guard:
               return len(self._entries)
