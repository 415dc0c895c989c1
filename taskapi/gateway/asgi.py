from __future__ import annotations

from taskapi.config import load_config
from taskapi.identity import StaticTokenIdentityProvider
from taskapi.tasks.redis_store import RedisTaskStore

from .app import create_app

_config = load_config()
_store = RedisTaskStore(url=_config.redis_url, key_prefix=_config.store_prefix)
app = create_app(
    _store,
    StaticTokenIdentityProvider.from_string(_config.api_tokens),
    allowed_origin=_config.allowed_origin,
)
