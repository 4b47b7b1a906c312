"""
URL configuration for order_engine project.
"""
from django.contrib import admin
from django.urls import path

from orders.api.views import graphql_view
from orders.api.webhooks import courier_webhook, payment_webhook

urlpatterns = [
    path('admin/', admin.site.urls),
    path('graphql/', graphql_view, name='graphql'),
    path('webhooks/payment/', payment_webhook, name='payment-webhook'),
    path('webhooks/courier/', courier_webhook, name='courier-webhook'),
]
