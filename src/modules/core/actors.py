"""Who is asking: the caller identity passed into the service layer.

Services never look at ``request.user`` directly; views translate the
authenticated user into an ``Actor`` so background tasks and webhooks
can call the same operations as ``Actor.system()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID


class ActorKind:
    ADMIN = "admin"
    STAFF = "staff"
    CUSTOMER = "customer"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    kind: str
    label: str
    user_id: Optional[int] = None
    supermarket_id: Optional[UUID] = None

    @property
    def is_admin(self) -> bool:
        return self.kind == ActorKind.ADMIN

    @property
    def is_staff(self) -> bool:
        return self.kind == ActorKind.STAFF

    @property
    def is_system(self) -> bool:
        return self.kind == ActorKind.SYSTEM

    @property
    def is_manual(self) -> bool:
        """Explicit human action by staff or an administrator."""
        return self.kind in (ActorKind.ADMIN, ActorKind.STAFF)

    @classmethod
    def system(cls, label: str = "system") -> Actor:
        return cls(kind=ActorKind.SYSTEM, label=label)

    @classmethod
    def customer(cls, email: str) -> Actor:
        return cls(kind=ActorKind.CUSTOMER, label=email)

    @classmethod
    def from_user(cls, user) -> Actor:
        """Build an actor from an authenticated Django user.

        Platform administrators are ``is_staff`` users; supermarket staff
        are users with an approved ``supermarket`` profile.  Anything else
        is treated as a customer identified by the user's email.
        """
        if user.is_staff or user.is_superuser:
            return cls(kind=ActorKind.ADMIN, label=user.get_username(), user_id=user.pk)
        supermarket = getattr(user, "supermarket", None)
        if supermarket is not None and supermarket.is_approved:
            return cls(
                kind=ActorKind.STAFF,
                label=user.get_username(),
                user_id=user.pk,
                supermarket_id=supermarket.id,
            )
        return cls(kind=ActorKind.CUSTOMER, label=user.email or user.get_username(), user_id=user.pk)
