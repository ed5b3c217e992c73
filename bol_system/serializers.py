from rest_framework import serializers
from .models import *


class CustomerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Customer
        fields = ['id', 'customer', 'customer_code', 'address', 'address2', 'city', 'state', 'zip',
                  'enable_ground_inventory', 'is_active']


class MaterialSerializer(serializers.ModelSerializer):
    class Meta:
        model = Material
        fields = ['id', 'customer', 'material_name', 'ref_num', 'truck_type', 'is_active']


class RailcarSerializer(serializers.ModelSerializer):
    unloaded_weight = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    remaining_weight = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Railcar
        fields = ['id', 'customer', 'railcar_id', 'car_initial', 'car_number', 'commodity',
                  'railcar_bol_number', 'le_status', 'current_status', 'material', 'batch_number',
                  'reported_weight', 'unloaded_weight', 'remaining_weight',
                  'released_as_empty_at', 'released_as_empty_by', 'is_active']


class GroundInventoryLotSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.customer', read_only=True)
    material_name = serializers.CharField(source='material.material_name', read_only=True)
    ref_num = serializers.CharField(source='material.ref_num', read_only=True)
    location_name = serializers.SerializerMethodField()

    class Meta:
        model = GroundInventoryLot
        fields = ['id', 'customer', 'customer_name', 'material', 'material_name', 'ref_num',
                  'source_type', 'source_railcar', 'source_railcar_number', 'source_rail_shipment_bol_number',
                  'location', 'location_name', 'starting_weight', 'remaining_weight', 'uom',
                  'received_at', 'received_by', 'status', 'notes', 'created_at', 'updated_at']

    def get_location_name(self, obj):
        return obj.location.project_name if obj.location else None


class GroundInventoryAllocationSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.customer', read_only=True)
    material_name = serializers.CharField(source='material.material_name', read_only=True)
    order_number = serializers.CharField(source='bol.order.order_number', read_only=True)
    bol_status = serializers.CharField(source='bol.status', read_only=True)
    created_by_email = serializers.SerializerMethodField()

    class Meta:
        model = GroundInventoryAllocation
        fields = ['id', 'lot', 'bol', 'bol_status', 'order_number', 'customer', 'customer_name',
                  'material', 'material_name', 'allocated_weight', 'allocation_type',
                  'created_by', 'created_by_email', 'notes', 'created_at']

    def get_created_by_email(self, obj):
        return obj.created_by.email if obj.created_by else None


class BOLSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source='order.order_number', read_only=True)
    customer_name = serializers.SerializerMethodField()
    material_name = serializers.SerializerMethodField()
    project_name = serializers.SerializerMethodField()

    class Meta:
        model = BOL
        fields = ['id', 'order', 'order_number', 'bol_date', 'status', 'version',
                  'customer', 'customer_name', 'shipper', 'project', 'project_name',
                  'material', 'material_name',
                  'inventory_source', 'ground_inventory_lot', 'secondary_ground_inventory_lot',
                  'ground_inventory_allocated_weight', 'secondary_ground_inventory_allocated_weight',
                  'railcar_id', 'rail_shipment_bol_number',
                  'split_load', 'secondary_railcar_id', 'secondary_rail_shipment_bol_number',
                  'gross_weight', 'tare_weight', 'primary_net_weight', 'primary_ton_weight',
                  'secondary_gross_weight', 'secondary_tare_weight',
                  'secondary_net_weight', 'secondary_ton_weight',
                  'net_weight', 'ton_weight', 'weigh_in_time', 'weigh_out_time',
                  'truck_id', 'trailer_id', 'driver_name', 'driver_signature_image', 'signed_at',
                  'comments', 'created_by', 'created_at', 'completed_at', 'completed_by']
        read_only_fields = fields

    def get_customer_name(self, obj):
        return obj.customer.customer if obj.customer else None

    def get_material_name(self, obj):
        return obj.material.material_name if obj.material else None

    def get_project_name(self, obj):
        return obj.project.project_name if obj.project else None


weight_field = dict(max_digits=12, decimal_places=2, required=False, allow_null=True)


class BOLCreateSerializer(serializers.Serializer):
    """Input for BOL creation. Business rules are enforced by BOLLifecycleService."""
    order = serializers.IntegerField(required=False, allow_null=True)
    bol_date = serializers.DateField(required=False, allow_null=True)
    customer = serializers.IntegerField(required=False, allow_null=True)
    shipper = serializers.IntegerField(required=False, allow_null=True)
    project = serializers.IntegerField(required=False, allow_null=True)
    material = serializers.IntegerField(required=False, allow_null=True)
    status = serializers.ChoiceField(choices=['Draft', 'Completed'], required=False, default='Draft')
    inventory_source = serializers.CharField(required=False, allow_blank=True, default='railcar')
    ground_inventory_lot = serializers.IntegerField(required=False, allow_null=True)
    secondary_ground_inventory_lot = serializers.IntegerField(required=False, allow_null=True)
    railcar_id = serializers.CharField(required=False, allow_blank=True, max_length=40)
    rail_shipment_bol_number = serializers.CharField(required=False, allow_blank=True, max_length=100)
    split_load = serializers.BooleanField(required=False, default=False)
    secondary_railcar_id = serializers.CharField(required=False, allow_blank=True, max_length=40)
    gross_weight = serializers.DecimalField(**weight_field)
    tare_weight = serializers.DecimalField(**weight_field)
    secondary_gross_weight = serializers.DecimalField(**weight_field)
    secondary_tare_weight = serializers.DecimalField(**weight_field)
    weigh_in_time = serializers.DateTimeField(required=False, allow_null=True)
    weigh_out_time = serializers.DateTimeField(required=False, allow_null=True)
    truck_id = serializers.CharField(required=False, allow_blank=True, max_length=50)
    trailer_id = serializers.CharField(required=False, allow_blank=True, max_length=50)
    driver_name = serializers.CharField(required=False, allow_blank=True, max_length=200)
    driver_signature_image = serializers.CharField(required=False, allow_blank=True)
    signed_at = serializers.DateTimeField(required=False, allow_null=True)
    comments = serializers.CharField(required=False, allow_blank=True)


class BOLCompletionSerializer(serializers.Serializer):
    gross_weight = serializers.DecimalField(max_digits=12, decimal_places=2)
    tare_weight = serializers.DecimalField(max_digits=12, decimal_places=2)
    weigh_in_time = serializers.DateTimeField()
    weigh_out_time = serializers.DateTimeField()
    driver_name = serializers.CharField(max_length=200)
    driver_signature_image = serializers.CharField()
    signed_at = serializers.DateTimeField(required=False, allow_null=True)
    split_load = serializers.BooleanField(required=False, default=False)
    secondary_railcar_id = serializers.CharField(required=False, allow_blank=True, max_length=40)
    secondary_gross_weight = serializers.DecimalField(**weight_field)
    inventory_source = serializers.CharField(required=False, allow_blank=True)
    ground_inventory_lot = serializers.IntegerField(required=False, allow_null=True)
    secondary_ground_inventory_lot = serializers.IntegerField(required=False, allow_null=True)
    rail_shipment_bol_number = serializers.CharField(required=False, allow_blank=True, max_length=100)
    secondary_rail_shipment_bol_number = serializers.CharField(required=False, allow_blank=True, max_length=100)
    comments = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate_driver_name(self, value):
        if not value.strip():
            raise serializers.ValidationError('Driver name is required')
        return value.strip()


class GroundInventoryAdjustmentSerializer(serializers.Serializer):
    customer = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all())
    material = serializers.PrimaryKeyRelatedField(queryset=Material.objects.all())
    starting_weight = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    remaining_weight = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0,
                                                required=False, allow_null=True)
    source_railcar_number = serializers.CharField(required=False, allow_blank=True, max_length=40, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')
