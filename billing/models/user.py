from typing import Optional

from billing.models.base import MongoModel


class User(MongoModel):
    """A chat-platform identity, created lazily on first reference."""
    platform_id: str
    # Where this user wants to be paid; stored dash-free
    prompt_pay_id: Optional[str] = None
