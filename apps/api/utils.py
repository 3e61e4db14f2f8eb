import json
import logging
from typing import Any, Optional

from fastapi import Request


logger = logging.getLogger("fitness.api")


async def read_json(request: Request) -> Any:
    """Request body as JSON, or None when empty or unparsable."""
    body = await request.body()
    if not body or not body.strip():
        return None
    try:
        return json.loads(body)
    except ValueError:
        logger.info("payload_unparsable bytes=%d", len(body))
        return None


def user_agent(request: Request) -> Optional[str]:
    return request.headers.get("user-agent")
