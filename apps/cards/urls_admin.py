from django.urls import path

from . import views

app_name = "cards_admin"

urlpatterns = [
    path("cards/reminders/", views.admin_reminder_states, name="reminder_states"),
    path("cards/pricing/<str:card_type>/", views.admin_update_price, name="update_price"),
    path("cards/<str:card_type>/", views.admin_card_list, name="list"),
    path("cards/<str:card_type>/<uuid:pk>/decision/", views.admin_card_decision, name="decision"),
]
