"""
status.py - Publish batch progress to Redis

Keys:
  {prefix}:devtools:run      hash   status, total, done, failed, current_url, last_seen
  {prefix}:devtools:results  stream one entry per target (index, url, ok, path|kind+error)

Without a reachable Redis the publisher is disabled and every call is a no-op.
"""

import logging
import time

import redis

from .config import MA_PREFIX, REDIS_HOST, REDIS_PORT

logger = logging.getLogger(__name__)


class RunStatus:
    def __init__(self, client=None, prefix=MA_PREFIX):
        self.r = client
        self.key = f"{prefix}:devtools:run"
        self.stream = f"{prefix}:devtools:results"

    @classmethod
    def connect(cls, host=REDIS_HOST, port=REDIS_PORT, prefix=MA_PREFIX):
        client = redis.Redis(host=host, port=port, decode_responses=True)
        try:
            client.ping()
        except redis.RedisError as e:
            logger.info(f"Redis not available at {host}:{port}, run status disabled ({e})")
            client = None
        return cls(client, prefix)

    @property
    def enabled(self):
        return self.r is not None

    def _call(self, fn):
        if not self.r:
            return
        try:
            fn(self.r)
        except redis.RedisError as e:
            logger.warning(f"Redis error, run status disabled: {e}")
            self.r = None

    def start(self, total):
        self._call(lambda r: r.hset(self.key, mapping={
            "status": "running",
            "total": total,
            "done": 0,
            "failed": 0,
            "started": int(time.time()),
            "last_seen": int(time.time()),
        }))

    def target_started(self, index, url):
        self._call(lambda r: r.hset(self.key, mapping={
            "current_index": index,
            "current_url": url,
            "last_seen": int(time.time()),
        }))

    def target_done(self, index, url, path):
        def publish(r):
            r.hincrby(self.key, "done", 1)
            r.xadd(self.stream, {
                "index": index,
                "url": url,
                "ok": "true",
                "path": str(path),
                "timestamp": int(time.time()),
            })
        self._call(publish)

    def target_failed(self, index, url, error):
        def publish(r):
            r.hincrby(self.key, "failed", 1)
            r.xadd(self.stream, {
                "index": index,
                "url": url,
                "ok": "false",
                "kind": getattr(error, "kind", "error"),
                "error": str(error),
                "timestamp": int(time.time()),
            })
        self._call(publish)

    def finish(self, status):
        def publish(r):
            r.hset(self.key, mapping={"status": status, "last_seen": int(time.time())})
            r.hdel(self.key, "current_index", "current_url")
        self._call(publish)
