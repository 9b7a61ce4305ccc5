from rest_framework import serializers


class StrictSerializer(serializers.Serializer):
    """Input serializer that rejects keys it does not declare."""

    def to_internal_value(self, data):
        if hasattr(data, "keys"):
            unknown = sorted(set(data.keys()) - set(self.fields.keys()))
            if unknown:
                raise serializers.ValidationError(
                    {key: ["Unexpected field."] for key in unknown}
                )
        return super().to_internal_value(data)
