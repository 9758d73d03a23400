"""
Pydantic schemas for log entry payloads.

Only the fields the index needs are declared; everything else in a
message (content, signature, previous, ...) is ignored.
"""

from pydantic import BaseModel, ConfigDict, Field

# messages.seq is a signed 32-bit column
MAX_SEQUENCE = 2**31 - 1


class SsbValue(BaseModel):
    """The signed value of a message."""
    model_config = ConfigDict(extra="ignore")

    author: str = Field(
        ...,
        description="Feed id of the author, e.g. @...=.ed25519"
    )
    sequence: int = Field(
        ...,
        ge=0,
        le=MAX_SEQUENCE,
        description="Position of the message in its author's feed"
    )


class SsbMessage(BaseModel):
    """
    A message as stored in the log: its key plus its value.

    Example:
        {"key": "%abc=.sha256", "value": {"author": "@xyz=.ed25519", "sequence": 3}}
    """
    model_config = ConfigDict(extra="ignore")

    key: str = Field(
        ...,
        description="Content-addressed message id, e.g. %...=.sha256"
    )
    value: SsbValue
