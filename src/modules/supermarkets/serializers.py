from __future__ import annotations

import structlog
from rest_framework import exceptions, serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from modules.core.serializers import StrictSerializer
from modules.supermarkets.models import ApprovalStatus, Supermarket

logger = structlog.get_logger(__name__)


class ApprovedStaffTokenObtainPairSerializer(TokenObtainPairSerializer):
    """JWT login restricted to platform admins and approved supermarkets."""

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        supermarket = getattr(user, "supermarket", None)
        if supermarket is not None:
            token["supermarket_id"] = str(supermarket.id)
        token["is_admin"] = bool(user.is_staff or user.is_superuser)
        return token

    def validate(self, attrs):
        data = super().validate(attrs)
        user = self.user
        if user.is_staff or user.is_superuser:
            return data

        supermarket = getattr(user, "supermarket", None)
        if supermarket is None or not supermarket.is_approved:
            logger.warning(
                "auth.login_rejected",
                user_id=user.pk,
                approval_status=getattr(supermarket, "approval_status", None),
            )
            raise exceptions.AuthenticationFailed(
                "Supermarket account is not approved.", code="account_not_approved"
            )
        return data


class UpdateSupermarketSerializer(StrictSerializer):
    approval_status = serializers.ChoiceField(choices=ApprovalStatus.choices, required=False)
    commercial_rate = serializers.DecimalField(
        max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False
    )
    payment_terms = serializers.IntegerField(min_value=0, max_value=365, required=False)
    is_sponsored = serializers.BooleanField(required=False)


class SupermarketSerializer(serializers.ModelSerializer):
    email = serializers.EmailField(source="user.email", read_only=True)

    class Meta:
        model = Supermarket
        fields = [
            "id",
            "company_name",
            "email",
            "phone",
            "address",
            "latitude",
            "longitude",
            "approval_status",
            "commercial_rate",
            "payment_terms",
            "is_sponsored",
            "created_at",
        ]
        read_only_fields = fields
