"""Authenticated principal passed explicitly through services."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Principal:
    """The user on whose behalf an operation runs.

    Built once per request from the bearer token (or, for the evaluation
    loop, from the rule owner) and handed to every service call. Nothing in
    the engine reads the caller from ambient state.
    """

    user_id: int
    username: str
    email: str

    @classmethod
    def from_user(cls, user) -> "Principal":
        return cls(user_id=user.id, username=user.username, email=user.email)
