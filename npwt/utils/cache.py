"""
npwt/utils/cache.py
Cache des rapports (Redis si configuré, sinon mémoire du processus)
"""

import json
import hashlib
import logging
from datetime import datetime, timedelta
from typing import Any, Optional

import redis

from npwt.core.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None
_redis_checked = False

# Cache mémoire fallback
memory_cache = {}


def get_redis_client() -> Optional[redis.Redis]:
    """Client Redis créé au premier usage ; None si REDIS_URL absent ou injoignable"""
    global _redis_client, _redis_checked
    if _redis_checked:
        return _redis_client
    _redis_checked = True
    if not settings.REDIS_URL:
        return None
    try:
        client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
        client.ping()
        _redis_client = client
    except redis.RedisError as e:
        logger.warning(f"Redis non disponible ({e}), utilisation du cache mémoire")
        _redis_client = None
    return _redis_client


def get_cache_key(prefix: str, *args) -> str:
    """
    Génère une clé de cache

    Args:
        prefix: Préfixe de la clé
        *args: Arguments pour générer la clé (plage, empreinte du journal...)
    """
    key_str = ":".join(str(arg) for arg in args)
    return f"{prefix}:{hashlib.md5(key_str.encode()).hexdigest()}"


def cache_report(key: str, data: Any, ttl: Optional[int] = None) -> bool:
    """Met un rapport en cache ; un échec du cache n'interrompt jamais le rapport"""
    ttl = ttl or settings.REPORT_CACHE_TTL
    client = get_redis_client()
    try:
        if client is not None:
            client.setex(key, ttl, json.dumps(data, default=str))
        else:
            memory_cache[key] = {
                "data": data,
                "expiry": datetime.now() + timedelta(seconds=ttl),
            }
        logger.debug(f"Rapport mis en cache: {key}")
        return True
    except (redis.RedisError, TypeError, ValueError) as e:
        logger.error(f"Erreur lors de la mise en cache: {e}")
        return False


def get_cached_report(key: str) -> Optional[Any]:
    client = get_redis_client()
    try:
        if client is not None:
            cached = client.get(key)
            return json.loads(cached) if cached else None

        item = memory_cache.get(key)
        if item is None:
            return None
        if item["expiry"] > datetime.now():
            return item["data"]
        # Nettoyer l'élément expiré
        memory_cache.pop(key, None)
        return None
    except (redis.RedisError, ValueError) as e:
        logger.error(f"Erreur lors de la récupération du cache: {e}")
        return None


def clear_cache(prefix: Optional[str] = None) -> int:
    """Vide le cache (éventuellement limité à un préfixe). Retourne le nombre de clés supprimées"""
    client = get_redis_client()
    try:
        if client is not None:
            pattern = f"{prefix}:*" if prefix else "*"
            keys = list(client.scan_iter(match=pattern))
            return client.delete(*keys) if keys else 0

        keys = [k for k in memory_cache if not prefix or k.startswith(f"{prefix}:")]
        for k in keys:
            del memory_cache[k]
        return len(keys)
    except redis.RedisError as e:
        logger.error(f"Erreur lors du vidage du cache: {e}")
        return 0
