from typing import Literal

from pydantic import BaseModel


class ChatMessage(BaseModel):
    """One turn of a model conversation."""

    role: Literal["system", "user", "assistant"]
    content: str
