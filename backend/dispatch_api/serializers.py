from rest_framework import serializers

from dispatch.models import DispatchRequest, Priority
from drivers.models import ServiceType


class LocationSerializer(serializers.Serializer):
    lat = serializers.FloatField(min_value=-90, max_value=90)
    lng = serializers.FloatField(min_value=-180, max_value=180)


class DispatchRequestSerializer(serializers.Serializer):
    """
    Validates the JSON body of POST /dispatch/ and turns it into a DispatchRequest.
    """
    pickup_location = LocationSerializer()
    destination_location = LocationSerializer(required=False, allow_null=True)
    service_type = serializers.ChoiceField(choices=[s.value for s in ServiceType])
    vehicle_class = serializers.CharField(required=False, allow_null=True, allow_blank=True, max_length=50)
    priority = serializers.ChoiceField(choices=[p.value for p in Priority], default=Priority.NORMAL.value)
    max_distance = serializers.FloatField(required=False, allow_null=True, min_value=0.1)
    customer_id = serializers.CharField(max_length=255)
    request_id = serializers.CharField(required=False, max_length=255)

    def to_dispatch_request(self) -> DispatchRequest:
        data = self.validated_data
        destination = data.get("destination_location")

        extra = {}
        if data.get("request_id"):
            extra["request_id"] = data["request_id"]

        return DispatchRequest(
            pickup=(data["pickup_location"]["lat"], data["pickup_location"]["lng"]),
            destination=(destination["lat"], destination["lng"]) if destination else None,
            service_type=data["service_type"],
            vehicle_class=data.get("vehicle_class") or None,
            priority=data["priority"],
            max_distance_km=data.get("max_distance"),
            customer_id=data["customer_id"],
            **extra,
        )


class MetricsQuerySerializer(serializers.Serializer):
    window_hours = serializers.FloatField(required=False, default=24, min_value=0.1, max_value=24 * 90)
