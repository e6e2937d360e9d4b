from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class CardType(StrEnum):
    """Card tier purchased by the operator."""

    HOUR = "hour"
    FULL = "full"
    NONE = "none"


class UserType(StrEnum):
    ADMIN = "admin"
    NORMAL = "normal"


class User(BaseModel):
    """Operator record handed over by the external verification subsystem.

    Immutable for the lifetime of a workflow.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    username: str
    verified: bool = False
    card_type: CardType = Field(default=CardType.NONE)
    user_type: UserType = Field(default=UserType.NORMAL)

    @property
    def is_admin(self) -> bool:
        return self.user_type == UserType.ADMIN
