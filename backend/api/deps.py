"""Request-scoped dependencies shared by the routers."""

from fastapi import Header, HTTPException


async def current_learner_id(x_learner_id: str | None = Header(default=None)) -> str:
    """Resolve the opaque learner id supplied by the identity layer."""
    if not x_learner_id or not x_learner_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_learner_id.strip()
