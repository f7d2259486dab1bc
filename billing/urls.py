"""
URL routing for billing API endpoints.
"""
from django.urls import path
from . import views

app_name = 'billing'

urlpatterns = [
    path('bills/', views.BillListCreateView.as_view(), name='bill-list'),
    path('bills/<int:pk>/', views.BillDetailView.as_view(), name='bill-detail'),
]
