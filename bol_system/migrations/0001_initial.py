import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Customer',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('customer', models.CharField(help_text='Company name', max_length=200)),
                ('customer_code', models.CharField(blank=True, default='', max_length=20)),
                ('address', models.CharField(max_length=200)),
                ('address2', models.CharField(blank=True, max_length=200)),
                ('city', models.CharField(max_length=100)),
                ('state', models.CharField(max_length=2)),
                ('zip', models.CharField(max_length=10)),
                ('enable_ground_inventory', models.BooleanField(default=False, help_text='Convert residual weight of railcars released as empty into ground inventory lots')),
                ('is_active', models.BooleanField(default=True)),
            ],
            options={
                'ordering': ['customer'],
            },
        ),
        migrations.AddConstraint(
            model_name='customer',
            constraint=models.UniqueConstraint(condition=models.Q(('customer_code', ''), _negated=True), fields=('customer_code',), name='unique_customer_code_when_set'),
        ),
        migrations.CreateModel(
            name='Shipper',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('shipper_name', models.CharField(max_length=200)),
                ('is_active', models.BooleanField(default=True)),
            ],
            options={
                'ordering': ['shipper_name'],
            },
        ),
        migrations.CreateModel(
            name='Project',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('project_name', models.CharField(max_length=200)),
                ('full_address', models.TextField(blank=True)),
                ('is_active', models.BooleanField(default=True)),
                ('customer', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='projects', to='bol_system.customer')),
            ],
            options={
                'ordering': ['project_name'],
            },
        ),
        migrations.CreateModel(
            name='Material',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('material_name', models.CharField(max_length=200)),
                ('ref_num', models.CharField(help_text='Customer reference number', max_length=100)),
                ('truck_type', models.CharField(blank=True, max_length=100)),
                ('is_active', models.BooleanField(default=True)),
                ('customer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='materials', to='bol_system.customer')),
            ],
            options={
                'ordering': ['material_name'],
            },
        ),
        migrations.CreateModel(
            name='Order',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('order_number', models.CharField(db_index=True, max_length=50)),
                ('order_date', models.DateField(blank=True, null=True)),
                ('railcar_id', models.CharField(blank=True, default='', help_text='Preferred railcar', max_length=50)),
                ('split_load', models.BooleanField(default=False)),
                ('secondary_railcar_id', models.CharField(blank=True, default='', max_length=50)),
                ('pick_up_date', models.DateField(blank=True, null=True)),
                ('delivery_date', models.DateField(blank=True, null=True)),
                ('access_code', models.CharField(blank=True, max_length=50)),
                ('order_status', models.CharField(choices=[('Draft', 'Draft'), ('Submitted', 'Submitted'), ('Shipped', 'Shipped'), ('Cancelled', 'Cancelled')], default='Draft', max_length=12)),
                ('notes', models.TextField(blank=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('customer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='orders', to='bol_system.customer')),
                ('material', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='orders', to='bol_system.material')),
                ('project', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='orders', to='bol_system.project')),
                ('shipper', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='orders', to='bol_system.shipper')),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='Railcar',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('car_initial', models.CharField(max_length=10)),
                ('car_number', models.CharField(max_length=20)),
                ('railcar_id', models.CharField(db_index=True, help_text="'<INITIAL> <NUMBER>'", max_length=40)),
                ('commodity', models.CharField(blank=True, max_length=200)),
                ('railcar_bol_number', models.CharField(blank=True, help_text='Carrier shipment BOL number', max_length=100)),
                ('le_status', models.CharField(blank=True, max_length=50)),
                ('current_status', models.CharField(choices=[('Inbound', 'Inbound'), ('Available', 'Available'), ('Released', 'Released')], default='Inbound', max_length=12)),
                ('station', models.CharField(blank=True, max_length=100)),
                ('track', models.CharField(blank=True, max_length=50)),
                ('batch_number', models.CharField(blank=True, max_length=100)),
                ('reported_weight', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('released_as_empty_at', models.DateTimeField(blank=True, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('customer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='railcars', to='bol_system.customer')),
                ('material', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='railcars', to='bol_system.material')),
                ('released_as_empty_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['railcar_id'],
                'unique_together': {('customer', 'car_initial', 'car_number')},
            },
        ),
        migrations.CreateModel(
            name='GroundInventoryLot',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('source_type', models.CharField(choices=[('railcar_conversion', 'Railcar conversion'), ('manual_adjustment', 'Manual adjustment')], default='railcar_conversion', max_length=24)),
                ('source_railcar_number', models.CharField(blank=True, default='', max_length=40)),
                ('source_rail_shipment_bol_number', models.CharField(blank=True, default='', max_length=100)),
                ('conversion_token', models.CharField(blank=True, default='', help_text='Idempotency key for railcar conversions (unique when set)', max_length=100)),
                ('starting_weight', models.DecimalField(decimal_places=2, max_digits=12)),
                ('remaining_weight', models.DecimalField(decimal_places=2, max_digits=12)),
                ('uom', models.CharField(default='lbs', max_length=10)),
                ('received_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('status', models.CharField(choices=[('available', 'Available'), ('depleted', 'Depleted'), ('archived', 'Archived')], db_index=True, default='available', max_length=12)),
                ('notes', models.TextField(blank=True, default='')),
                ('customer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='ground_inventory_lots', to='bol_system.customer')),
                ('location', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='bol_system.project')),
                ('material', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='ground_inventory_lots', to='bol_system.material')),
                ('received_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('source_railcar', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='ground_inventory_lots', to='bol_system.railcar')),
            ],
            options={
                'ordering': ['status', '-received_at', '-created_at'],
            },
        ),
        migrations.AddConstraint(
            model_name='groundinventorylot',
            constraint=models.UniqueConstraint(condition=models.Q(('conversion_token', ''), _negated=True), fields=('conversion_token',), name='unique_lot_conversion_token_when_set'),
        ),
        migrations.AddIndex(
            model_name='groundinventorylot',
            index=models.Index(fields=['customer', 'material', 'status'], name='lot_customer_material_status'),
        ),
        migrations.CreateModel(
            name='BOL',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('bol_date', models.DateField(blank=True, null=True)),
                ('inventory_source', models.CharField(choices=[('railcar', 'Railcar'), ('ground', 'Ground')], default='railcar', max_length=10)),
                ('ground_inventory_allocated_weight', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('secondary_ground_inventory_allocated_weight', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('status', models.CharField(choices=[('Draft', 'Draft'), ('Completed', 'Completed')], db_index=True, default='Draft', max_length=12)),
                ('gross_weight', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('tare_weight', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('primary_net_weight', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('primary_ton_weight', models.DecimalField(blank=True, decimal_places=6, max_digits=14, null=True)),
                ('split_load', models.BooleanField(default=False)),
                ('secondary_railcar_id', models.CharField(blank=True, default='', max_length=40)),
                ('secondary_gross_weight', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('secondary_tare_weight', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('secondary_net_weight', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('secondary_ton_weight', models.DecimalField(blank=True, decimal_places=6, max_digits=14, null=True)),
                ('net_weight', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('ton_weight', models.DecimalField(blank=True, decimal_places=6, max_digits=14, null=True)),
                ('weigh_in_time', models.DateTimeField(blank=True, null=True)),
                ('weigh_out_time', models.DateTimeField(blank=True, null=True)),
                ('driver_name', models.CharField(blank=True, default='', max_length=200)),
                ('driver_signature_image', models.TextField(blank=True, default='', help_text='Signature image as a data URL')),
                ('signed_at', models.DateTimeField(blank=True, null=True)),
                ('railcar_id', models.CharField(blank=True, default='', max_length=40)),
                ('rail_shipment_bol_number', models.CharField(blank=True, default='', max_length=100)),
                ('secondary_rail_shipment_bol_number', models.CharField(blank=True, default='', max_length=100)),
                ('truck_id', models.CharField(max_length=50)),
                ('trailer_id', models.CharField(max_length=50)),
                ('comments', models.TextField(blank=True, default='')),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('version', models.PositiveIntegerField(default=0, help_text='Incremented on every guarded write')),
                ('completed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='bols_completed', to=settings.AUTH_USER_MODEL)),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='bols_created', to=settings.AUTH_USER_MODEL)),
                ('customer', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='bols', to='bol_system.customer')),
                ('ground_inventory_lot', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='primary_bols', to='bol_system.groundinventorylot')),
                ('material', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='bols', to='bol_system.material')),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='bols', to='bol_system.order')),
                ('project', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='bols', to='bol_system.project')),
                ('secondary_ground_inventory_lot', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='secondary_bols', to='bol_system.groundinventorylot')),
                ('shipper', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='bols', to='bol_system.shipper')),
            ],
            options={
                'verbose_name': 'BOL',
                'verbose_name_plural': 'BOLs',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='GroundInventoryAllocation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('allocated_weight', models.DecimalField(decimal_places=2, max_digits=12)),
                ('allocation_type', models.CharField(choices=[('bol_completion', 'BOL completion'), ('manual_adjustment', 'Manual adjustment')], default='bol_completion', max_length=24)),
                ('notes', models.TextField(blank=True, default='')),
                ('bol', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='ground_inventory_allocations', to='bol_system.bol')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('customer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='+', to='bol_system.customer')),
                ('lot', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='allocations', to='bol_system.groundinventorylot')),
                ('material', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='+', to='bol_system.material')),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='AuditLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('action', models.CharField(max_length=64)),
                ('object_type', models.CharField(blank=True, max_length=64)),
                ('object_id', models.CharField(blank=True, max_length=64)),
                ('message', models.TextField(blank=True)),
                ('user_email', models.CharField(blank=True, max_length=200)),
                ('ip', models.CharField(blank=True, max_length=45)),
                ('method', models.CharField(blank=True, max_length=10)),
                ('path', models.CharField(blank=True, max_length=300)),
                ('user_agent', models.CharField(blank=True, max_length=300)),
                ('extra', models.JSONField(blank=True, null=True)),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='UserCustomerAccess',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('user_email', models.EmailField(db_index=True, help_text='Email address of the user (matched case-insensitively)', max_length=254)),
                ('is_primary', models.BooleanField(default=True, help_text='Primary customer shown by default (only one per user)')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('created_by', models.EmailField(blank=True, help_text='Admin who granted this access', max_length=254)),
                ('customer', models.ForeignKey(help_text='Customer this user can access', on_delete=django.db.models.deletion.CASCADE, related_name='user_access', to='bol_system.customer')),
            ],
            options={
                'verbose_name': 'User Customer Access',
                'verbose_name_plural': 'User Customer Access',
                'ordering': ['user_email', '-is_primary', 'customer__customer'],
                'unique_together': {('user_email', 'customer')},
            },
        ),
    ]
