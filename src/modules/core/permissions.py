from rest_framework.permissions import BasePermission


def _approved_supermarket(user) -> bool:
    supermarket = getattr(user, "supermarket", None)
    return supermarket is not None and supermarket.is_approved


class IsPlatformAdmin(BasePermission):
    """Back-office administrators (Django ``is_staff`` users)."""

    message = "Administrator access required."

    def has_permission(self, request, view) -> bool:
        user = request.user
        return bool(user and user.is_authenticated and (user.is_staff or user.is_superuser))


class IsApprovedStaff(BasePermission):
    """Supermarket staff whose account has been approved."""

    message = "Only approved supermarket staff may perform this action."

    def has_permission(self, request, view) -> bool:
        user = request.user
        return bool(user and user.is_authenticated and _approved_supermarket(user))


class IsAdminOrApprovedStaff(BasePermission):
    message = "Staff or administrator access required."

    def has_permission(self, request, view) -> bool:
        return IsPlatformAdmin().has_permission(request, view) or IsApprovedStaff().has_permission(
            request, view
        )
