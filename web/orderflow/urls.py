from django.urls import include, path

urlpatterns = [
    path("api/orders/", include("apps.orders.urls")),
    path("", include("apps.monitoring.urls")),
]

handler404 = "gateway.exceptions.not_found_view"
handler500 = "gateway.exceptions.server_error_view"
