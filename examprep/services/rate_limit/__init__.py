from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException, Request

from examprep.connections.redis import get_redis
from examprep.services.auth import get_current_user
from examprep.models.user import User


def limit_route(seconds: int | Callable[[], int]):
    """Return a FastAPI dependency that rate-limits a user on a route for N seconds.

    `seconds` may be a callable so the window follows live settings; a window
    of zero or less disables the limit. The first call sets a Redis key with
    SET NX and a TTL; later calls inside the window get a 429 with the wait.
    """

    def _dependency(request: Request, current_user: User = Depends(get_current_user)) -> None:
        window = seconds() if callable(seconds) else seconds
        if window <= 0:
            return

        client = get_redis()
        key = f"rl:{current_user.id}:{request.url.path}"
        if client.set(name=key, value="1", ex=window, nx=True):
            return

        ttl = client.ttl(key)
        raise HTTPException(status_code=429, detail=f"Rate limited. Try again in {max(int(ttl or 0), 1)}s")

    return _dependency
