import asyncio
from typing import Dict

from motor.motor_asyncio import AsyncIOMotorClient

from cinedrive.config import MONGO_DB, MONGO_URI

_clients: Dict[int, AsyncIOMotorClient] = {}


def _loop_key() -> int:
    try:
        loop = asyncio.get_running_loop()
        return id(loop)
    except RuntimeError:
        return -1


def get_mongo_client() -> AsyncIOMotorClient:
    key = _loop_key()
    client = _clients.get(key)
    if client is None:
        client = AsyncIOMotorClient(MONGO_URI, tz_aware=True)
        _clients[key] = client
    return client


def get_mongo_db():
    return get_mongo_client()[MONGO_DB]


def close_mongo_clients() -> None:
    for client in _clients.values():
        client.close()
    _clients.clear()
