"""
Execution context for data-access calls.

Every repository call receives a Ctx identifying the acting principal.
The root context (user id 0) is reserved for privileged internal calls
such as signup, cache rebuilds and tests.
"""

from dataclasses import dataclass

from ..domain.exceptions import CtxCannotNewRootCtx

ROOT_USER_ID = 0


@dataclass(frozen=True)
class Ctx:
    """Identity of the principal a data-access call executes under."""

    user_id: int

    @classmethod
    def root_ctx(cls) -> "Ctx":
        return cls(user_id=ROOT_USER_ID)

    @classmethod
    def new(cls, user_id: int) -> "Ctx":
        """
        Build a context for an authenticated principal.

        Raises:
            CtxCannotNewRootCtx: If user_id is the reserved root id
        """
        if user_id == ROOT_USER_ID:
            raise CtxCannotNewRootCtx()
        return cls(user_id=user_id)

    @property
    def is_root(self) -> bool:
        return self.user_id == ROOT_USER_ID
