from django.urls import path

from . import views

app_name = "cards_resident"

urlpatterns = [
    path("cards/pricing/", views.card_pricing, name="pricing"),
    path("cards/<str:card_type>/", views.resident_cards, name="list"),
    path("cards/<str:card_type>/batch-pay/", views.resident_card_batch_pay, name="batch_pay"),
    path("cards/<str:card_type>/capacity/<uuid:unit_id>/", views.resident_unit_capacity, name="capacity"),
    path("cards/<str:card_type>/<uuid:pk>/", views.resident_card_detail, name="detail"),
    path("cards/<str:card_type>/<uuid:pk>/pay/", views.resident_card_pay, name="pay"),
    path("cards/<str:card_type>/<uuid:pk>/cancel/", views.resident_card_cancel, name="cancel"),
]
