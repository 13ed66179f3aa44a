"""
Application State Management for SellCheck

Holds the long-lived objects the routes need (orchestrator, cache store,
shared HTTP client) in one dataclass that can be injected into the app.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

import httpx


@dataclass
class AppState:
    """Centralized application state."""

    orchestrator: Any
    cache: Any = None
    http_client: Optional[httpx.AsyncClient] = None
    admin_secret: Optional[str] = None
    debug_mode: bool = False

    started_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "started_at": self.started_at,
            "pipeline": self.orchestrator.get_stats(),
        }
        if self.cache is not None and hasattr(self.cache, "get_stats"):
            stats["cache"] = self.cache.get_stats()
        return stats


def get_app_state_from_request(request) -> "AppState":
    """
    Get AppState from a request.

    Usage in routes:
        @router.get("/endpoint")
        async def endpoint(request: Request):
            app_state = get_app_state_from_request(request)
    """
    return request.app.state.app_state
