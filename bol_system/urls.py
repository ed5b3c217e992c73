from django.urls import path
from . import views

urlpatterns = [
    path('health/', views.health_check, name='health_check'),
    path('bols/', views.bol_list, name='bol_list'),
    path('bols/<int:bol_id>/', views.bol_detail, name='bol_detail'),
    path('bols/<int:bol_id>/complete/', views.complete_bol, name='complete_bol'),
    path('railcars/<int:railcar_id>/release-empty/', views.railcar_release_empty, name='railcar_release_empty'),
    path('ground-inventory/', views.ground_inventory_list, name='ground_inventory_list'),
    path('ground-inventory/adjustments/', views.ground_inventory_adjustments, name='ground_inventory_adjustments'),
    path('ground-inventory/adjustments/<int:lot_id>/', views.ground_inventory_adjustment_detail,
         name='ground_inventory_adjustment_detail'),
    path('ground-inventory/lots/<int:lot_id>/archive/', views.ground_inventory_lot_archive,
         name='ground_inventory_lot_archive'),
    path('ground-inventory/allocations/', views.ground_inventory_allocations, name='ground_inventory_allocations'),
]
