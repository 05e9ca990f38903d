from django.urls import path
from .views import (
    GeocodeView,
    HealthCheckView,
    StationListView,
    StationMapView,
    StationSearchView,
    SuggestPumpsView,
)

urlpatterns = [
    path('stations/', StationListView.as_view(), name='station-list'),
    path('stations/search/', StationSearchView.as_view(), name='station-search'),
    path('stations/map/', StationMapView.as_view(), name='station-map'),
    path('suggest-pumps/', SuggestPumpsView.as_view(), name='suggest-pumps'),
    path('places/geocode/', GeocodeView.as_view(), name='geocode'),
    path('health/', HealthCheckView.as_view(), name='health-check'),
]
