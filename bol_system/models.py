from django.conf import settings
from django.db import models
from django.db.models import Q, Sum
from django.utils import timezone
import logging

from .exceptions import Conflict

logger = logging.getLogger(__name__)

WEIGHT_FIELD_KWARGS = {'max_digits': 12, 'decimal_places': 2}
TON_FIELD_KWARGS = {'max_digits': 14, 'decimal_places': 6}


class TimestampedModel(models.Model):
    """Base model with common timestamp fields"""
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Customer(TimestampedModel):
    customer = models.CharField(max_length=200, help_text="Company name")
    customer_code = models.CharField(max_length=20, blank=True, default='')
    address = models.CharField(max_length=200)
    address2 = models.CharField(max_length=200, blank=True)
    city = models.CharField(max_length=100)
    state = models.CharField(max_length=2)
    zip = models.CharField(max_length=10)
    enable_ground_inventory = models.BooleanField(
        default=False,
        help_text="Convert residual weight of railcars released as empty into ground inventory lots"
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['customer']
        constraints = [
            models.UniqueConstraint(
                fields=['customer_code'],
                condition=~Q(customer_code=''),
                name='unique_customer_code_when_set',
            ),
        ]

    def __str__(self):
        return self.customer

    def save(self, *args, **kwargs):
        self.customer_code = (self.customer_code or '').strip().upper()
        super().save(*args, **kwargs)

    @property
    def full_address(self):
        address_lines = [self.address]
        if self.address2:
            address_lines.append(self.address2)
        address_lines.append(f"{self.city}, {self.state} {self.zip}")
        return "\n".join(address_lines)


class Shipper(TimestampedModel):
    shipper_name = models.CharField(max_length=200)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['shipper_name']

    def __str__(self):
        return self.shipper_name


class Project(TimestampedModel):
    """Delivery location (job site) for loads."""
    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, null=True, blank=True, related_name='projects')
    project_name = models.CharField(max_length=200)
    full_address = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['project_name']

    def __str__(self):
        return self.project_name


class Material(TimestampedModel):
    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name='materials')
    material_name = models.CharField(max_length=200)
    ref_num = models.CharField(max_length=100, help_text="Customer reference number")
    truck_type = models.CharField(max_length=100, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['material_name']

    def __str__(self):
        return f"{self.material_name} ({self.ref_num})" if self.ref_num else self.material_name


class Order(TimestampedModel):
    STATUS_CHOICES = (
        ("Draft", "Draft"),
        ("Submitted", "Submitted"),
        ("Shipped", "Shipped"),
        ("Cancelled", "Cancelled"),
    )

    order_number = models.CharField(max_length=50, db_index=True)
    order_date = models.DateField(null=True, blank=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='orders')
    shipper = models.ForeignKey(Shipper, on_delete=models.PROTECT, related_name='orders')
    project = models.ForeignKey(Project, on_delete=models.PROTECT, related_name='orders')
    material = models.ForeignKey(Material, on_delete=models.PROTECT, related_name='orders')
    railcar_id = models.CharField(max_length=50, blank=True, default='', help_text="Preferred railcar")
    split_load = models.BooleanField(default=False)
    secondary_railcar_id = models.CharField(max_length=50, blank=True, default='')
    pick_up_date = models.DateField(null=True, blank=True)
    delivery_date = models.DateField(null=True, blank=True)
    access_code = models.CharField(max_length=50, blank=True)
    order_status = models.CharField(max_length=12, choices=STATUS_CHOICES, default="Draft")
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.order_number


class Railcar(TimestampedModel):
    STATUS_INBOUND = 'Inbound'
    STATUS_AVAILABLE = 'Available'
    STATUS_RELEASED = 'Released'
    STATUS_CHOICES = (
        (STATUS_INBOUND, "Inbound"),
        (STATUS_AVAILABLE, "Available"),
        (STATUS_RELEASED, "Released"),
    )

    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name='railcars')
    car_initial = models.CharField(max_length=10)
    car_number = models.CharField(max_length=20)
    railcar_id = models.CharField(max_length=40, db_index=True, help_text="'<INITIAL> <NUMBER>'")
    commodity = models.CharField(max_length=200, blank=True)
    railcar_bol_number = models.CharField(max_length=100, blank=True, help_text="Carrier shipment BOL number")
    le_status = models.CharField(max_length=50, blank=True)
    current_status = models.CharField(max_length=12, choices=STATUS_CHOICES, default=STATUS_INBOUND)
    station = models.CharField(max_length=100, blank=True)
    track = models.CharField(max_length=50, blank=True)
    material = models.ForeignKey(Material, on_delete=models.SET_NULL, null=True, blank=True, related_name='railcars')
    batch_number = models.CharField(max_length=100, blank=True)
    reported_weight = models.DecimalField(null=True, blank=True, **WEIGHT_FIELD_KWARGS)
    released_as_empty_at = models.DateTimeField(null=True, blank=True)
    released_as_empty_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['railcar_id']
        unique_together = [['customer', 'car_initial', 'car_number']]

    def __str__(self):
        return self.railcar_id

    def save(self, *args, **kwargs):
        initial = (self.car_initial or '').strip().upper()
        number = (self.car_number or '').strip()
        if initial and number:
            self.car_initial = initial
            self.car_number = number
            self.railcar_id = f"{initial} {number}"
        elif not self.railcar_id:
            raise ValueError("Railcar requires car initial and car number")
        super().save(*args, **kwargs)

    @property
    def unloaded_weight(self):
        """Net weight drawn from this railcar by completed BOLs (either leg)."""
        completed = BOL.objects.filter(customer_id=self.customer_id, status=BOL.STATUS_COMPLETED)
        primary = completed.filter(railcar_id=self.railcar_id).aggregate(
            total=Sum('primary_net_weight')
        )['total'] or 0
        secondary = completed.filter(secondary_railcar_id=self.railcar_id).aggregate(
            total=Sum('secondary_net_weight')
        )['total'] or 0
        return primary + secondary

    @property
    def remaining_weight(self):
        if self.reported_weight is None:
            return 0
        return self.reported_weight - self.unloaded_weight


class GroundInventoryLot(TimestampedModel):
    SOURCE_RAILCAR_CONVERSION = 'railcar_conversion'
    SOURCE_MANUAL_ADJUSTMENT = 'manual_adjustment'
    SOURCE_CHOICES = (
        (SOURCE_RAILCAR_CONVERSION, "Railcar conversion"),
        (SOURCE_MANUAL_ADJUSTMENT, "Manual adjustment"),
    )

    STATUS_AVAILABLE = 'available'
    STATUS_DEPLETED = 'depleted'
    STATUS_ARCHIVED = 'archived'
    STATUS_CHOICES = (
        (STATUS_AVAILABLE, "Available"),
        (STATUS_DEPLETED, "Depleted"),
        (STATUS_ARCHIVED, "Archived"),
    )
    CONSUMABLE_STATUSES = (STATUS_AVAILABLE, STATUS_DEPLETED)

    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='ground_inventory_lots')
    material = models.ForeignKey(Material, on_delete=models.PROTECT, related_name='ground_inventory_lots')
    source_type = models.CharField(max_length=24, choices=SOURCE_CHOICES, default=SOURCE_RAILCAR_CONVERSION)
    source_railcar = models.ForeignKey(
        Railcar, on_delete=models.SET_NULL, null=True, blank=True, related_name='ground_inventory_lots'
    )
    source_railcar_number = models.CharField(max_length=40, blank=True, default='')
    source_rail_shipment_bol_number = models.CharField(max_length=100, blank=True, default='')
    conversion_token = models.CharField(
        max_length=100, blank=True, default='',
        help_text="Idempotency key for railcar conversions (unique when set)"
    )
    location = models.ForeignKey(Project, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    starting_weight = models.DecimalField(**WEIGHT_FIELD_KWARGS)
    remaining_weight = models.DecimalField(**WEIGHT_FIELD_KWARGS)
    uom = models.CharField(max_length=10, default='lbs')
    received_at = models.DateTimeField(default=timezone.now)
    received_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default=STATUS_AVAILABLE, db_index=True)
    notes = models.TextField(blank=True, default='')

    class Meta:
        ordering = ['status', '-received_at', '-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['conversion_token'],
                condition=~Q(conversion_token=''),
                name='unique_lot_conversion_token_when_set',
            ),
        ]
        indexes = [
            models.Index(fields=['customer', 'material', 'status'], name='lot_customer_material_status'),
        ]

    def __str__(self):
        return f"Lot {self.pk} {self.material} ({self.remaining_weight}/{self.starting_weight} {self.uom})"


class GroundInventoryAllocation(TimestampedModel):
    """Append-only record of one lot's consumption by one BOL."""
    TYPE_BOL_COMPLETION = 'bol_completion'
    TYPE_MANUAL_ADJUSTMENT = 'manual_adjustment'
    TYPE_CHOICES = (
        (TYPE_BOL_COMPLETION, "BOL completion"),
        (TYPE_MANUAL_ADJUSTMENT, "Manual adjustment"),
    )

    lot = models.ForeignKey(GroundInventoryLot, on_delete=models.PROTECT, related_name='allocations')
    bol = models.ForeignKey('BOL', on_delete=models.PROTECT, related_name='ground_inventory_allocations')
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='+')
    material = models.ForeignKey(Material, on_delete=models.PROTECT, related_name='+')
    allocated_weight = models.DecimalField(**WEIGHT_FIELD_KWARGS)
    allocation_type = models.CharField(max_length=24, choices=TYPE_CHOICES, default=TYPE_BOL_COMPLETION)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    notes = models.TextField(blank=True, default='')

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.allocated_weight} lbs from lot {self.lot_id} to BOL {self.bol_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise Conflict("Ground inventory allocations cannot be modified")
        if self.allocated_weight is not None and self.allocated_weight < 0:
            raise ValueError("Allocated weight cannot be negative")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise Conflict("Ground inventory allocations cannot be deleted")


class BOL(TimestampedModel):
    STATUS_DRAFT = 'Draft'
    STATUS_COMPLETED = 'Completed'
    STATUS_CHOICES = (
        (STATUS_DRAFT, "Draft"),
        (STATUS_COMPLETED, "Completed"),
    )

    SOURCE_RAILCAR = 'railcar'
    SOURCE_GROUND = 'ground'
    SOURCE_CHOICES = (
        (SOURCE_RAILCAR, "Railcar"),
        (SOURCE_GROUND, "Ground"),
    )

    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name='bols')
    bol_date = models.DateField(null=True, blank=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, null=True, blank=True, related_name='bols')
    shipper = models.ForeignKey(Shipper, on_delete=models.PROTECT, null=True, blank=True, related_name='bols')
    project = models.ForeignKey(Project, on_delete=models.PROTECT, null=True, blank=True, related_name='bols')
    material = models.ForeignKey(Material, on_delete=models.PROTECT, null=True, blank=True, related_name='bols')

    inventory_source = models.CharField(max_length=10, choices=SOURCE_CHOICES, default=SOURCE_RAILCAR)
    ground_inventory_lot = models.ForeignKey(
        GroundInventoryLot, on_delete=models.PROTECT, null=True, blank=True, related_name='primary_bols'
    )
    secondary_ground_inventory_lot = models.ForeignKey(
        GroundInventoryLot, on_delete=models.PROTECT, null=True, blank=True, related_name='secondary_bols'
    )
    ground_inventory_allocated_weight = models.DecimalField(null=True, blank=True, **WEIGHT_FIELD_KWARGS)
    secondary_ground_inventory_allocated_weight = models.DecimalField(null=True, blank=True, **WEIGHT_FIELD_KWARGS)

    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default=STATUS_DRAFT, db_index=True)

    gross_weight = models.DecimalField(null=True, blank=True, **WEIGHT_FIELD_KWARGS)
    tare_weight = models.DecimalField(null=True, blank=True, **WEIGHT_FIELD_KWARGS)
    primary_net_weight = models.DecimalField(null=True, blank=True, **WEIGHT_FIELD_KWARGS)
    primary_ton_weight = models.DecimalField(null=True, blank=True, **TON_FIELD_KWARGS)
    split_load = models.BooleanField(default=False)
    secondary_railcar_id = models.CharField(max_length=40, blank=True, default='')
    secondary_gross_weight = models.DecimalField(null=True, blank=True, **WEIGHT_FIELD_KWARGS)
    secondary_tare_weight = models.DecimalField(null=True, blank=True, **WEIGHT_FIELD_KWARGS)
    secondary_net_weight = models.DecimalField(null=True, blank=True, **WEIGHT_FIELD_KWARGS)
    secondary_ton_weight = models.DecimalField(null=True, blank=True, **TON_FIELD_KWARGS)
    net_weight = models.DecimalField(null=True, blank=True, **WEIGHT_FIELD_KWARGS)
    ton_weight = models.DecimalField(null=True, blank=True, **TON_FIELD_KWARGS)
    weigh_in_time = models.DateTimeField(null=True, blank=True)
    weigh_out_time = models.DateTimeField(null=True, blank=True)

    driver_name = models.CharField(max_length=200, blank=True, default='')
    driver_signature_image = models.TextField(blank=True, default='', help_text='Signature image as a data URL')
    signed_at = models.DateTimeField(null=True, blank=True)

    railcar_id = models.CharField(max_length=40, blank=True, default='')
    rail_shipment_bol_number = models.CharField(max_length=100, blank=True, default='')
    secondary_rail_shipment_bol_number = models.CharField(max_length=100, blank=True, default='')
    truck_id = models.CharField(max_length=50)
    trailer_id = models.CharField(max_length=50)
    comments = models.TextField(blank=True, default='')

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='bols_created'
    )
    completed_at = models.DateTimeField(null=True, blank=True)
    completed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, null=True, blank=True, related_name='bols_completed'
    )
    version = models.PositiveIntegerField(default=0, help_text='Incremented on every guarded write')

    class Meta:
        ordering = ['-created_at']
        verbose_name = 'BOL'
        verbose_name_plural = 'BOLs'

    def __str__(self):
        return f"BOL {self.pk} ({self.status})"

    @property
    def is_completed(self):
        return self.status == self.STATUS_COMPLETED

    def normalize_source_fields(self):
        """Clear the fields that do not apply to the chosen inventory source."""
        if self.inventory_source == self.SOURCE_GROUND:
            self.railcar_id = ''
            self.secondary_railcar_id = ''
            self.rail_shipment_bol_number = ''
            self.secondary_rail_shipment_bol_number = ''
            if not self.split_load:
                self.secondary_ground_inventory_lot = None
                self.secondary_ground_inventory_allocated_weight = None
        else:
            self.ground_inventory_lot = None
            self.secondary_ground_inventory_lot = None
            self.ground_inventory_allocated_weight = None
            self.secondary_ground_inventory_allocated_weight = None

    def apply_derived_weights(self):
        from .services.weights import compute_bol_weights

        weights = compute_bol_weights(
            self.gross_weight,
            self.tare_weight,
            secondary_gross=self.secondary_gross_weight,
            secondary_tare=self.secondary_tare_weight,
            split_load=self.split_load,
        )
        if weights is None:
            self.primary_net_weight = self.primary_ton_weight = None
            self.secondary_net_weight = self.secondary_ton_weight = None
            self.net_weight = self.ton_weight = None
            return

        self.primary_net_weight = weights.primary.net_weight
        self.primary_ton_weight = weights.primary.ton_weight
        if weights.secondary is not None:
            self.secondary_net_weight = weights.secondary.net_weight
            self.secondary_ton_weight = weights.secondary.ton_weight
        else:
            self.secondary_net_weight = self.secondary_ton_weight = None
        self.net_weight = weights.net_weight
        self.ton_weight = weights.ton_weight

    def save(self, *args, **kwargs):
        if not self._state.adding and BOL.objects.filter(pk=self.pk, status=self.STATUS_COMPLETED).exists():
            raise Conflict("Completed BOLs are locked and cannot be modified")
        self.normalize_source_fields()
        self.apply_derived_weights()
        super().save(*args, **kwargs)
        logger.info(f"BOL {self.pk} saved as {self.status} (net {self.net_weight} lbs)")

    def delete(self, *args, **kwargs):
        if self.status != self.STATUS_DRAFT:
            raise Conflict("Only Draft BOLs can be deleted")
        return super().delete(*args, **kwargs)


class AuditLog(TimestampedModel):
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True)
    object_id = models.CharField(max_length=64, blank=True)
    message = models.TextField(blank=True)
    user_email = models.CharField(max_length=200, blank=True)
    ip = models.CharField(max_length=45, blank=True)
    method = models.CharField(max_length=10, blank=True)
    path = models.CharField(max_length=300, blank=True)
    user_agent = models.CharField(max_length=300, blank=True)
    extra = models.JSONField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.action} {self.object_type} {self.object_id} by {self.user_email}"


class UserCustomerAccess(models.Model):
    """
    Links users to the customers they can access.

    Customer-role users only see BOLs, railcars and ground inventory for
    the customers linked here. Internal and admin users see all data.
    """
    user_email = models.EmailField(
        db_index=True,
        help_text='Email address of the user (matched case-insensitively)'
    )
    customer = models.ForeignKey(
        Customer, on_delete=models.CASCADE,
        related_name='user_access',
        help_text='Customer this user can access'
    )
    is_primary = models.BooleanField(
        default=True,
        help_text='Primary customer shown by default (only one per user)'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    created_by = models.EmailField(blank=True, help_text='Admin who granted this access')

    class Meta:
        unique_together = ['user_email', 'customer']
        verbose_name = 'User Customer Access'
        verbose_name_plural = 'User Customer Access'
        ordering = ['user_email', '-is_primary', 'customer__customer']

    def __str__(self):
        primary = "★" if self.is_primary else ""
        return f"{primary}{self.user_email} → {self.customer.customer}"

    def save(self, *args, **kwargs):
        # Ensure only one primary per user
        if self.is_primary:
            UserCustomerAccess.objects.filter(
                user_email=self.user_email,
                is_primary=True
            ).exclude(pk=self.pk).update(is_primary=False)
        super().save(*args, **kwargs)
