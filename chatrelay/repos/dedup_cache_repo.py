import os
import time
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..common.aws import ddb_resource
from ..common.config import settings
from ..common.logging import logger
from ..common.timing import timed
from ..domain.errors import CacheError


class DedupCacheRepo:
    """Key-value store with TTL, backed by DynamoDB.

    Item schema:
      - pk: cache key (string)
      - value: stored value (string, may be empty)
      - created_at: unix epoch seconds
      - ttl: unix epoch seconds (DynamoDB TTL attribute)

    DynamoDB removes expired items lazily, so reads also compare `ttl`
    against the current time.
    """

    def __init__(self, table_name: Optional[str] = None, now_fn=None):
        self.table_name = table_name or os.getenv("DDB_TABLE_DEDUP") or settings.dedup_table
        self.table = ddb_resource().Table(self.table_name)
        self._now_fn = now_fn or (lambda: int(time.time()))
        # dev mode: in-memory store per warm runtime, key -> (expires_at, value)
        self._dev_items: dict[str, tuple[int, str]] = {}

    def get(self, key: str) -> Optional[str]:
        now = self._now_fn()
        if settings.is_dev():
            item = self._dev_items.get(key)
            if item is None:
                return None
            expires_at, value = item
            if expires_at <= now:
                del self._dev_items[key]
                return None
            return value

        try:
            with timed("dedup_get", logger=logger, component="dedup_cache_repo"):
                resp = self.table.get_item(Key={"pk": key}, ConsistentRead=True)
        except (ClientError, BotoCoreError) as e:
            logger.error({"dedup_cache": "ddb_get_error", "err": str(e), "table": self.table_name})
            raise CacheError(f"cannot get item with key [{key}]") from e

        item = resp.get("Item")
        if not item:
            return None
        ttl = item.get("ttl")
        if ttl is not None and int(ttl) <= now:
            return None
        return str(item.get("value") or "")

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        now = self._now_fn()
        if settings.is_dev():
            self._dev_items[key] = (now + int(ttl_seconds), value)
            return

        item = {"pk": key, "value": value, "created_at": now, "ttl": now + int(ttl_seconds)}
        try:
            with timed("dedup_set", logger=logger, component="dedup_cache_repo"):
                self.table.put_item(Item=item)
        except (ClientError, BotoCoreError) as e:
            logger.error({"dedup_cache": "ddb_put_error", "err": str(e), "table": self.table_name})
            raise CacheError(f"cannot set item with key [{key}]") from e
