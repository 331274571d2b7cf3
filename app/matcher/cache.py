import logging
import threading
from typing import Callable, Optional

from .batch import Matcher, create_matcher
from .catalog import ReferenceCatalog, load_catalog

logger = logging.getLogger(__name__)


class MatcherCache:
    """
    宿主进程持有的匹配器缓存（get-or-create）。
    第一次 get() 在锁内加载参考库并构建匹配器；同时到达的其他调用方在锁上等待，
    拿到的是同一个实例，不会重复构建。构建失败不缓存，下次调用重新尝试。
    """

    def __init__(self, loader: Callable[[], ReferenceCatalog] = load_catalog):
        self._loader = loader
        self._lock = threading.Lock()
        self._matcher: Optional[Matcher] = None

    def get(self) -> Matcher:
        matcher = self._matcher
        if matcher is not None:
            return matcher
        with self._lock:
            if self._matcher is None:
                logger.info("Building matcher from reference catalog")
                self._matcher = create_matcher(self._loader())
            return self._matcher

    def reset(self) -> None:
        with self._lock:
            self._matcher = None
