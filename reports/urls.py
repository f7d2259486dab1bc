"""
URL routing for report API endpoints.
"""
from django.urls import path
from . import views

app_name = 'reports'

urlpatterns = [
    path('stats/', views.StatsView.as_view(), name='stats'),
    path('reports/daily/', views.DailyReportView.as_view(), name='daily-report'),
    path('reports/export/', views.MovementExportView.as_view(), name='movement-export'),
]
