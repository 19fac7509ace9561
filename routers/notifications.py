# routers/notifications.py
"""
Realtime notification socket.

Each connection subscribes to its user's redis channel, so a notification
published from any process (API or worker) reaches every open session of
that user. A user with no open socket simply receives nothing.
"""
import asyncio
import logging

import redis
import redis.asyncio as aioredis
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from jose import JWTError

from security import decode_token
from utils.realtime import ONLINE_USERS_KEY, user_channel

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications"])


async def _forward(pubsub, websocket: WebSocket) -> None:
     async for message in pubsub.listen():
          if message.get("type") == "message":
               await websocket.send_text(message["data"])


@router.websocket("/ws/notifications/{user_id}")
async def notifications_socket(websocket: WebSocket, user_id: int, token: str = Query(...)):
     container = websocket.app.state.container
     try:
          claims = decode_token(token, container.settings.jwt_secret)
     except JWTError:
          await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
          return
     if str(claims.get("id")) != str(user_id):
          await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
          return

     settings = container.settings
     client = aioredis.Redis(
          host=settings.redis_host,
          port=settings.redis_port,
          db=settings.redis_db,
          password=settings.redis_password,
          decode_responses=True,
     )
     pubsub = client.pubsub()
     try:
          await pubsub.subscribe(user_channel(user_id))
          await client.sadd(ONLINE_USERS_KEY, user_id)
     except redis.RedisError as e:
          logger.warning(f"⚠️ Realtime unavailable for user {user_id}: {e}")
          await pubsub.aclose()
          await client.aclose()
          await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
          return

     await websocket.accept()
     logger.info(f"🔌 User {user_id} connected for realtime notifications")
     forward = asyncio.create_task(_forward(pubsub, websocket))
     try:
          while True:
               await websocket.receive_text()
     except WebSocketDisconnect:
          pass
     finally:
          forward.cancel()
          try:
               await client.srem(ONLINE_USERS_KEY, user_id)
               await pubsub.unsubscribe(user_channel(user_id))
          except redis.RedisError as e:
               logger.warning(f"Realtime cleanup failed for user {user_id}: {e}")
          await pubsub.aclose()
          await client.aclose()
          logger.info(f"🔌 User {user_id} disconnected")
