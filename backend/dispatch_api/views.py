from django.apps import apps
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from dispatch.models import DispatchError
from .serializers import DispatchRequestSerializer, MetricsQuerySerializer


def get_engine():
    return apps.get_app_config("dispatch_api").get_engine()


class DispatchView(APIView):
    """
    POST a DispatchRequest, get a DispatchResult.
    - 200 for every resolved outcome, including "no driver" and "all declined"
    - 400 for an invalid body
    - 500 only when the engine reports an internal fault
    """

    def post(self, request):
        serializer = DispatchRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = get_engine().dispatch(serializer.to_dispatch_request())

        if result.error == DispatchError.INTERNAL_ERROR:
            return Response(result.to_dict(), status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return Response(result.to_dict(), status=status.HTTP_200_OK)


class DispatchMetricsView(APIView):
    """
    Best-effort success rate / latency / distance / surge summary.
    """

    def get(self, request):
        query = MetricsQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        snapshot = get_engine().get_metrics(window_hours=query.validated_data["window_hours"])
        return Response(snapshot.to_dict())
