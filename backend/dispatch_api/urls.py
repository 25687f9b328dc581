from django.urls import path

from .views import DispatchView, DispatchMetricsView

urlpatterns = [
    path('', DispatchView.as_view(), name='dispatch'),
    path('metrics/', DispatchMetricsView.as_view(), name='dispatch-metrics'),
]
