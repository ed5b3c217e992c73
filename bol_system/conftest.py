"""Shared fixtures for BOL and ground inventory tests."""

import pytest
from datetime import date
from decimal import Decimal
from django.contrib.auth.models import User

from bol_system.models import (
    BOL, Customer, GroundInventoryLot, Material, Order, Project, Railcar, Shipper
)


@pytest.fixture
def operator(db):
    return User.objects.create_user(
        username='yard@transload.test',
        email='yard@transload.test',
        password='testpass'
    )


@pytest.fixture
def customer(db):
    return Customer.objects.create(
        customer='Ohio Aggregates',
        customer_code='OHA',
        address='100 River Rd',
        city='Cincinnati',
        state='OH',
        zip='45202',
        enable_ground_inventory=True,
    )


@pytest.fixture
def other_customer(db):
    return Customer.objects.create(
        customer='Kentucky Sand Co',
        customer_code='KSC',
        address='9 Ferry St',
        city='Covington',
        state='KY',
        zip='41011',
    )


@pytest.fixture
def shipper(db):
    return Shipper.objects.create(shipper_name='CSX Transload')


@pytest.fixture
def project(customer):
    return Project.objects.create(
        customer=customer,
        project_name='I-71 Bridge Deck',
        full_address='I-71 at Mile 3, Cincinnati, OH',
    )


@pytest.fixture
def material(customer):
    return Material.objects.create(customer=customer, material_name='Frac Sand 40/70', ref_num='FS-4070')


@pytest.fixture
def other_material(customer):
    return Material.objects.create(customer=customer, material_name='Bag Lime', ref_num='BL-1')


@pytest.fixture
def order(customer, shipper, project, material):
    return Order.objects.create(
        order_number='ORD-1001',
        order_date=date(2025, 3, 1),
        customer=customer,
        shipper=shipper,
        project=project,
        material=material,
        railcar_id='TILX 12345',
    )


@pytest.fixture
def railcar(customer, material):
    return Railcar.objects.create(
        customer=customer,
        car_initial='tilx',
        car_number='12345',
        railcar_bol_number=' SHIP-778 ',
        current_status=Railcar.STATUS_AVAILABLE,
        material=material,
        reported_weight=Decimal('200000'),
    )


@pytest.fixture
def make_lot(customer, material):
    def _make_lot(starting_weight=Decimal('1000'), remaining_weight=None, **kwargs):
        remaining = starting_weight if remaining_weight is None else remaining_weight
        fields = dict(
            customer=customer,
            material=material,
            source_type=GroundInventoryLot.SOURCE_MANUAL_ADJUSTMENT,
            starting_weight=starting_weight,
            remaining_weight=remaining,
            status=GroundInventoryLot.STATUS_AVAILABLE if remaining > 0 else GroundInventoryLot.STATUS_DEPLETED,
        )
        fields.update(kwargs)
        return GroundInventoryLot.objects.create(**fields)
    return _make_lot


@pytest.fixture
def make_draft_bol(order, operator):
    def _make_draft_bol(**kwargs):
        fields = dict(
            order=order,
            bol_date=order.order_date,
            customer=order.customer,
            shipper=order.shipper,
            project=order.project,
            material=order.material,
            inventory_source=BOL.SOURCE_RAILCAR,
            railcar_id='TILX 12345',
            truck_id='T-42',
            trailer_id='TR-9',
            created_by=operator,
        )
        fields.update(kwargs)
        return BOL.objects.create(**fields)
    return _make_draft_bol


@pytest.fixture
def completion_payload():
    return {
        'gross_weight': Decimal('600'),
        'tare_weight': Decimal('100'),
        'weigh_in_time': '2025-03-02T08:00:00',
        'weigh_out_time': '2025-03-02T08:25:00',
        'driver_name': 'Pat Driver',
        'driver_signature_image': 'data:image/png;base64,iVBORw0KGgo=',
    }
