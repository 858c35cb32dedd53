from matcha.realtime.hub import ConnectionHub
from matcha.realtime.presence import InMemoryPresenceStore, PresenceStore, RedisPresenceStore

__all__ = ["ConnectionHub", "InMemoryPresenceStore", "PresenceStore", "RedisPresenceStore"]
