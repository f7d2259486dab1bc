"""
URL routing for ledger API endpoints.
"""
from django.urls import path
from . import views

app_name = 'ledger'

urlpatterns = [
    path('movements/', views.MovementListView.as_view(), name='movement-list'),
    path('products/<int:pk>/movements/', views.ProductMovementListView.as_view(), name='product-movements'),
]
