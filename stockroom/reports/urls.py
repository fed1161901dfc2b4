from django.urls import path
from .views import dashboard_summary

urlpatterns = [
    path('reports/dashboard/', dashboard_summary, name='report-dashboard'),
]
