from __future__ import annotations

from typing import Optional, Protocol, Sequence

from ..core.constants import DEFAULT_LIST_LIMIT
from ..core.enums import RequestStatus, Role
from .model import UserCreationRequest


class UserRequestRepository(Protocol):
    def create(
        self,
        *,
        requested_by: int,
        first_name: str,
        last_name: str,
        email: str,
        phone: Optional[str],
        role: Role,
        campus_id: int,
        justification: Optional[str],
    ) -> int:
        raise NotImplementedError

    def get_by_id(self, request_id: int) -> Optional[UserCreationRequest]:
        raise NotImplementedError

    def list_requests(
        self,
        *,
        status: Optional[RequestStatus] = None,
        requested_by: Optional[int] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> Sequence[UserCreationRequest]:
        raise NotImplementedError

    def decide(
        self,
        *,
        request_id: int,
        from_statuses: Sequence[RequestStatus],
        status: RequestStatus,
        processed_by: int,
        rejection_reason: Optional[str] = None,
    ) -> bool:
        """Move the request only if it is still in one of ``from_statuses``."""
        raise NotImplementedError
