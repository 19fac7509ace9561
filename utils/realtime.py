"""
Realtime push over redis pub/sub.

Each open websocket subscribes to its user's channel; PUBLISH returns the
number of live subscribers, which doubles as the online-session check.
"""
import json
from typing import Any, Dict

import redis

from utils.delivery import ProviderResult


CHANNEL_PREFIX = "notifications:user:"
ONLINE_USERS_KEY = "notifications:online"


def user_channel(user_id: int) -> str:
     return f"{CHANNEL_PREFIX}{user_id}"


class RedisRealtimeProvider:

     def __init__(self, redis_client: redis.Redis):
          self.redis = redis_client

     def send_realtime(self, user_id: int, payload: Dict[str, Any]) -> ProviderResult:
          try:
               receivers = self.redis.publish(user_channel(user_id), json.dumps(payload, default=str))
          except redis.RedisError as e:
               return ProviderResult.failure(f"Realtime publish failed: {e}")

          if not receivers:
               return ProviderResult.skip("user has no active connection")
          return ProviderResult.success()
