import time

from pydantic import BaseModel, ConfigDict, Field


class ChatIn(BaseModel):
    """Untrusted inbound frame. Any client-sent ``ts`` is ignored."""

    user: str
    text: str


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: str
    text: str
    ts: int = Field(default_factory=lambda: int(time.time()))

    @classmethod
    def stamp(cls, inbound: ChatIn) -> "ChatMessage":
        return cls(user=inbound.user, text=inbound.text, ts=int(time.time()))
