"""Explicit student session handed to the attempt controller."""

import uuid
from dataclasses import dataclass

from cbt.core.errors import AuthenticationError


@dataclass(frozen=True)
class StudentSession:
    """Identity of the caller, resolved once per request.

    The controller only ever asks for :attr:`current_student_id`; roles and
    profile data stay with the identity service.
    """

    student_id: uuid.UUID | None = None

    @property
    def current_student_id(self) -> uuid.UUID:
        if self.student_id is None:
            raise AuthenticationError("No authenticated student")
        return self.student_id

    @property
    def is_authenticated(self) -> bool:
        return self.student_id is not None


ANONYMOUS = StudentSession()
