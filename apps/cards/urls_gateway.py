from django.urls import path

from . import views

app_name = "cards_gateway"

urlpatterns = [
    path("vnpay/return/", views.vnpay_return, name="vnpay_return"),
]
