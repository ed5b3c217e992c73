from django.contrib import admin, messages

from .exceptions import Conflict
from .models import (
    Customer, Shipper, Project, Material, Order, Railcar, BOL,
    GroundInventoryLot, GroundInventoryAllocation, AuditLog, UserCustomerAccess
)
from .services.inventory_ledger import InventoryLedger


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ['customer', 'customer_code', 'city', 'state', 'enable_ground_inventory', 'is_active']
    list_filter = ['is_active', 'enable_ground_inventory', 'state']
    search_fields = ['customer', 'customer_code', 'city']


@admin.register(Shipper)
class ShipperAdmin(admin.ModelAdmin):
    list_display = ['shipper_name', 'is_active']
    list_filter = ['is_active']
    search_fields = ['shipper_name']


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ['project_name', 'customer', 'is_active']
    list_filter = ['is_active']
    search_fields = ['project_name', 'full_address']


@admin.register(Material)
class MaterialAdmin(admin.ModelAdmin):
    list_display = ['material_name', 'ref_num', 'customer', 'truck_type', 'is_active']
    list_filter = ['is_active', 'customer']
    search_fields = ['material_name', 'ref_num', 'customer__customer']


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'customer', 'material', 'project', 'order_status', 'order_date']
    list_filter = ['order_status', 'customer']
    search_fields = ['order_number', 'railcar_id', 'customer__customer']


@admin.register(Railcar)
class RailcarAdmin(admin.ModelAdmin):
    list_display = ['railcar_id', 'customer', 'current_status', 'material', 'reported_weight',
                    'remaining_weight_display']
    list_filter = ['current_status', 'customer', 'is_active']
    search_fields = ['railcar_id', 'railcar_bol_number', 'customer__customer']
    readonly_fields = ['railcar_id', 'released_as_empty_at', 'released_as_empty_by', 'remaining_weight_display']

    def remaining_weight_display(self, obj):
        return f"{obj.remaining_weight:.0f} lbs"
    remaining_weight_display.short_description = "Remaining"


@admin.register(BOL)
class BOLAdmin(admin.ModelAdmin):
    """Completed BOLs are locked; the admin shows them read-only."""
    list_display = ['id', 'order', 'customer', 'status', 'inventory_source', 'net_weight', 'ton_weight', 'created_at']
    list_filter = ['status', 'inventory_source', 'customer', 'created_at']
    search_fields = ['order__order_number', 'railcar_id', 'truck_id', 'trailer_id', 'driver_name']
    readonly_fields = [
        'status', 'primary_net_weight', 'primary_ton_weight', 'secondary_net_weight', 'secondary_ton_weight',
        'net_weight', 'ton_weight', 'ground_inventory_allocated_weight',
        'secondary_ground_inventory_allocated_weight', 'completed_at', 'completed_by', 'version',
    ]

    def has_change_permission(self, request, obj=None):
        if obj is not None and obj.is_completed:
            return False
        return super().has_change_permission(request, obj)

    def has_delete_permission(self, request, obj=None):
        if obj is not None and obj.is_completed:
            return False
        return super().has_delete_permission(request, obj)


class GroundInventoryAllocationInline(admin.TabularInline):
    model = GroundInventoryAllocation
    extra = 0
    can_delete = False
    readonly_fields = ['bol', 'allocated_weight', 'allocation_type', 'created_by', 'created_at']
    fields = readonly_fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(GroundInventoryLot)
class GroundInventoryLotAdmin(admin.ModelAdmin):
    list_display = ['id', 'customer', 'material', 'source_type', 'source_railcar_number',
                    'starting_weight', 'remaining_weight', 'status', 'received_at']
    list_filter = ['status', 'source_type', 'customer']
    search_fields = ['source_railcar_number', 'source_rail_shipment_bol_number', 'material__material_name']
    readonly_fields = ['remaining_weight', 'status', 'conversion_token', 'created_at', 'updated_at']
    inlines = [GroundInventoryAllocationInline]
    actions = ['archive_selected_lots']

    @admin.action(description='Archive selected lots')
    def archive_selected_lots(self, request, queryset):
        archived = 0
        for lot in queryset:
            try:
                InventoryLedger.archive_lot(lot)
                archived += 1
            except Conflict as e:
                self.message_user(request, f"Lot {lot.pk}: {e.message}", level=messages.WARNING)
        if archived:
            self.message_user(request, f"Archived {archived} lot(s)")


@admin.register(GroundInventoryAllocation)
class GroundInventoryAllocationAdmin(admin.ModelAdmin):
    list_display = ['lot', 'bol', 'customer', 'material', 'allocated_weight', 'allocation_type', 'created_at']
    list_filter = ['allocation_type', 'customer']
    search_fields = ['bol__order__order_number', 'material__material_name']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['action', 'object_type', 'object_id', 'user_email', 'created_at']
    list_filter = ['action', 'object_type', 'created_at']
    search_fields = ['action', 'object_type', 'object_id', 'user_email', 'message']
    readonly_fields = [
        'action', 'object_type', 'object_id', 'message', 'user_email',
        'ip', 'method', 'path', 'user_agent', 'extra', 'created_at'
    ]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(UserCustomerAccess)
class UserCustomerAccessAdmin(admin.ModelAdmin):
    """Admin interface for managing which customers a customer-role user can see."""
    list_display = ['user_email', 'customer', 'is_primary', 'created_at']
    list_filter = ['is_primary', 'created_at']
    search_fields = ['user_email', 'customer__customer']
    autocomplete_fields = ['customer']
    readonly_fields = ['created_at']

    fieldsets = (
        ('User Association', {
            'fields': ('user_email', 'customer')
        }),
        ('Access Settings', {
            'fields': ('is_primary', 'created_by')
        }),
        ('Metadata', {
            'fields': ('created_at',),
            'classes': ('collapse',)
        }),
    )
