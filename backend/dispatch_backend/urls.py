from django.urls import path, include

urlpatterns = [
    path('api/v1/dispatch/', include('dispatch_api.urls')),
]
