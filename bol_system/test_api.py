"""
API tests for BOL, railcar release and ground inventory endpoints.

Covers status codes, error bodies, role enforcement and customer scoping.
"""

import json
from datetime import date
from decimal import Decimal

from django.contrib.auth.models import User
from django.test import Client, TestCase

from bol_system.models import (
    BOL, AuditLog, Customer, GroundInventoryAllocation, GroundInventoryLot, Material, Order, Project,
    Railcar, Shipper, UserCustomerAccess,
)


class TransloadAPITestCase(TestCase):
    """Two customers, each with an order, a railcar and a ground lot."""

    def setUp(self):
        self.client = Client()

        self.shipper = Shipper.objects.create(shipper_name='CSX Transload')

        self.customer_a = Customer.objects.create(
            customer='Ohio Aggregates', customer_code='oha', address='100 River Rd',
            city='Cincinnati', state='OH', zip='45202', enable_ground_inventory=True,
        )
        self.customer_b = Customer.objects.create(
            customer='Kentucky Sand Co', customer_code='KSC', address='9 Ferry St',
            city='Covington', state='KY', zip='41011', enable_ground_inventory=True,
        )

        self.project_a = Project.objects.create(customer=self.customer_a, project_name='Bridge Deck')
        self.project_b = Project.objects.create(customer=self.customer_b, project_name='Levee Repair')
        self.material_a = Material.objects.create(customer=self.customer_a, material_name='Frac Sand', ref_num='FS')
        self.material_b = Material.objects.create(customer=self.customer_b, material_name='Bag Lime', ref_num='BL')

        self.order_a = Order.objects.create(
            order_number='ORD-A1', order_date=date(2025, 3, 1), customer=self.customer_a,
            shipper=self.shipper, project=self.project_a, material=self.material_a,
        )
        self.order_b = Order.objects.create(
            order_number='ORD-B1', order_date=date(2025, 3, 1), customer=self.customer_b,
            shipper=self.shipper, project=self.project_b, material=self.material_b,
        )

        self.railcar_a = Railcar.objects.create(
            customer=self.customer_a, car_initial='TILX', car_number='100', railcar_bol_number='SHIP-A',
            current_status=Railcar.STATUS_AVAILABLE, material=self.material_a, reported_weight=Decimal('300'),
        )
        self.railcar_b = Railcar.objects.create(
            customer=self.customer_b, car_initial='GATX', car_number='200', railcar_bol_number='SHIP-B',
            current_status=Railcar.STATUS_AVAILABLE, material=self.material_b, reported_weight=Decimal('900'),
        )

        self.lot_a = GroundInventoryLot.objects.create(
            customer=self.customer_a, material=self.material_a,
            source_type=GroundInventoryLot.SOURCE_MANUAL_ADJUSTMENT,
            starting_weight=Decimal('1000'), remaining_weight=Decimal('1000'),
        )
        self.lot_b = GroundInventoryLot.objects.create(
            customer=self.customer_b, material=self.material_b,
            source_type=GroundInventoryLot.SOURCE_MANUAL_ADJUSTMENT,
            starting_weight=Decimal('700'), remaining_weight=Decimal('700'),
        )

        self.staff = User.objects.create_user(username='yard', email='yard@transload.test', password='testpass')
        self.customer_user = User.objects.create_user(
            username='buyer', email='Buyer@OhioAgg.test', password='testpass'
        )
        UserCustomerAccess.objects.create(user_email='buyer@ohioagg.test', customer=self.customer_a)

        self.draft_a = BOL.objects.create(
            order=self.order_a, bol_date=date(2025, 3, 2), customer=self.customer_a, shipper=self.shipper,
            project=self.project_a, material=self.material_a, railcar_id='TILX 100',
            truck_id='T-1', trailer_id='TR-1', created_by=self.staff,
        )
        self.draft_b = BOL.objects.create(
            order=self.order_b, bol_date=date(2025, 3, 2), customer=self.customer_b, shipper=self.shipper,
            project=self.project_b, material=self.material_b, railcar_id='GATX 200',
            truck_id='T-2', trailer_id='TR-2', created_by=self.staff,
        )

    def login_as(self, user, role):
        self.client.force_login(user)
        session = self.client.session
        session['transload_role'] = {'role': role}
        session.save()

    def put_json(self, url, payload):
        return self.client.put(url, data=json.dumps(payload), content_type='application/json')

    def post_json(self, url, payload):
        return self.client.post(url, data=json.dumps(payload), content_type='application/json')

    def completion(self, **overrides):
        payload = {
            'gross_weight': '600',
            'tare_weight': '100',
            'weigh_in_time': '2025-03-02T08:00:00Z',
            'weigh_out_time': '2025-03-02T08:25:00Z',
            'driver_name': 'Pat Driver',
            'driver_signature_image': 'data:image/png;base64,iVBORw0KGgo=',
        }
        payload.update(overrides)
        return payload


class HealthAndAuthTest(TransloadAPITestCase):

    def test_health_check_needs_no_login(self):
        response = self.client.get('/api/health/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'healthy')

    def test_anonymous_request_is_refused(self):
        response = self.client.get('/api/bols/')
        self.assertEqual(response.status_code, 403)

    def test_missing_session_role_is_refused(self):
        self.client.force_login(self.staff)
        response = self.client.get('/api/bols/')
        self.assertEqual(response.status_code, 403)
        self.assertIn('error', response.json())


class BOLEndpointsTest(TransloadAPITestCase):

    def setUp(self):
        super().setUp()
        self.login_as(self.staff, 'internal')

    def test_list_filters(self):
        response = self.client.get('/api/bols/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()), 2)

        response = self.client.get('/api/bols/', {'customer': self.customer_b.pk})
        self.assertEqual([row['id'] for row in response.json()], [self.draft_b.pk])

        response = self.client.get('/api/bols/', {'railcar_id': 'tilx 100'})
        self.assertEqual([row['id'] for row in response.json()], [self.draft_a.pk])

        response = self.client.get('/api/bols/', {'status': 'completed'})
        self.assertEqual(response.json(), [])

    def test_list_rejects_bad_customer_param(self):
        response = self.client.get('/api/bols/', {'customer': 'abc'})
        self.assertEqual(response.status_code, 400)

    def test_create_draft(self):
        response = self.post_json('/api/bols/', {
            'order': self.order_a.pk, 'bol_date': '2025-03-03', 'customer': self.customer_a.pk,
            'shipper': self.shipper.pk, 'project': self.project_a.pk, 'material': self.material_a.pk,
            'railcar_id': 'TILX 100', 'truck_id': 'T-3', 'trailer_id': 'TR-3',
        })

        self.assertEqual(response.status_code, 201)
        bol = response.json()['bol']
        self.assertEqual(bol['status'], 'Draft')
        self.assertEqual(bol['rail_shipment_bol_number'], 'SHIP-A')
        self.assertTrue(AuditLog.objects.filter(action='BOL_CREATED', object_id=str(bol['id'])).exists())

    def test_create_missing_fields(self):
        response = self.post_json('/api/bols/', {'order': self.order_a.pk})
        self.assertEqual(response.status_code, 400)
        self.assertIn('Missing required fields', response.json()['error'])

    def test_create_completed_from_ground(self):
        payload = {
            'order': self.order_a.pk, 'bol_date': '2025-03-03', 'customer': self.customer_a.pk,
            'shipper': self.shipper.pk, 'project': self.project_a.pk, 'material': self.material_a.pk,
            'truck_id': 'T-3', 'trailer_id': 'TR-3', 'status': 'Completed',
            'inventory_source': 'ground', 'ground_inventory_lot': self.lot_a.pk,
        }
        payload.update(self.completion())

        response = self.post_json('/api/bols/', payload)

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['bol']['status'], 'Completed')
        self.lot_a.refresh_from_db()
        self.assertEqual(self.lot_a.remaining_weight, Decimal('500'))

    def test_complete_railcar_bol(self):
        response = self.put_json(f'/api/bols/{self.draft_a.pk}/complete/', self.completion())

        self.assertEqual(response.status_code, 200)
        bol = response.json()['bol']
        self.assertEqual(bol['status'], 'Completed')
        self.assertEqual(Decimal(bol['net_weight']), Decimal('500'))
        self.assertEqual(Decimal(bol['ton_weight']), Decimal('0.25'))

    def test_complete_keeps_supplied_shipment_number(self):
        response = self.put_json(f'/api/bols/{self.draft_a.pk}/complete/',
                                 self.completion(rail_shipment_bol_number='SHIP-MANUAL'))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['bol']['rail_shipment_bol_number'], 'SHIP-MANUAL')

    def test_complete_twice_conflicts(self):
        self.put_json(f'/api/bols/{self.draft_a.pk}/complete/', self.completion())
        response = self.put_json(f'/api/bols/{self.draft_a.pk}/complete/', self.completion())

        self.assertEqual(response.status_code, 409)
        self.assertIn('error', response.json())

    def test_complete_requires_driver(self):
        payload = self.completion()
        del payload['driver_name']
        response = self.put_json(f'/api/bols/{self.draft_a.pk}/complete/', payload)
        self.assertEqual(response.status_code, 400)

    def test_complete_unknown_bol(self):
        response = self.put_json('/api/bols/999999/complete/', self.completion())
        self.assertEqual(response.status_code, 404)

    def test_complete_ground_insufficient(self):
        self.draft_a.inventory_source = BOL.SOURCE_GROUND
        self.draft_a.ground_inventory_lot = self.lot_a
        self.draft_a.save()

        response = self.put_json(f'/api/bols/{self.draft_a.pk}/complete/',
                                 self.completion(gross_weight='2000', tare_weight='500'))

        self.assertEqual(response.status_code, 400)
        self.assertIn('enough remaining weight', response.json()['error'])
        self.draft_a.refresh_from_db()
        self.assertEqual(self.draft_a.status, BOL.STATUS_DRAFT)

    def test_complete_ground_lot_of_other_customer(self):
        self.draft_a.inventory_source = BOL.SOURCE_GROUND
        self.draft_a.ground_inventory_lot = self.lot_b
        self.draft_a.save()

        response = self.put_json(f'/api/bols/{self.draft_a.pk}/complete/', self.completion())

        self.assertEqual(response.status_code, 400)
        self.lot_b.refresh_from_db()
        self.assertEqual(self.lot_b.remaining_weight, Decimal('700'))

    def test_update_and_delete_draft(self):
        response = self.put_json(f'/api/bols/{self.draft_a.pk}/', {'truck_id': 'T-77'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['bol']['truck_id'], 'T-77')

        response = self.client.delete(f'/api/bols/{self.draft_a.pk}/')
        self.assertEqual(response.status_code, 200)
        self.assertFalse(BOL.objects.filter(pk=self.draft_a.pk).exists())

    def test_completed_bol_is_locked(self):
        self.put_json(f'/api/bols/{self.draft_a.pk}/complete/', self.completion())

        response = self.put_json(f'/api/bols/{self.draft_a.pk}/', {'truck_id': 'T-77'})
        self.assertEqual(response.status_code, 409)
        response = self.client.delete(f'/api/bols/{self.draft_a.pk}/')
        self.assertEqual(response.status_code, 409)

    def test_update_rejects_status_field(self):
        response = self.put_json(f'/api/bols/{self.draft_a.pk}/', {'status': 'Completed'})
        self.assertEqual(response.status_code, 400)


class RailcarReleaseTest(TransloadAPITestCase):

    def test_release_converts_residual_weight(self):
        self.login_as(self.staff, 'internal')

        response = self.put_json(f'/api/railcars/{self.railcar_a.pk}/release-empty/', {})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['railcar']['current_status'], 'Released')
        self.assertEqual(Decimal(body['ground_inventory_lot']['remaining_weight']), Decimal('300'))

        response = self.put_json(f'/api/railcars/{self.railcar_a.pk}/release-empty/', {})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(
            GroundInventoryLot.objects.filter(source_type=GroundInventoryLot.SOURCE_RAILCAR_CONVERSION).count(), 1
        )

    def test_unknown_railcar(self):
        self.login_as(self.staff, 'internal')
        response = self.put_json('/api/railcars/999999/release-empty/', {})
        self.assertEqual(response.status_code, 404)

    def test_customer_can_release_own_railcar(self):
        self.login_as(self.customer_user, 'customer')
        response = self.put_json(f'/api/railcars/{self.railcar_a.pk}/release-empty/', {})
        self.assertEqual(response.status_code, 200)

    def test_customer_cannot_release_other_customers_railcar(self):
        self.login_as(self.customer_user, 'customer')

        response = self.put_json(f'/api/railcars/{self.railcar_b.pk}/release-empty/', {})

        self.assertEqual(response.status_code, 403)
        self.railcar_b.refresh_from_db()
        self.assertEqual(self.railcar_b.current_status, Railcar.STATUS_AVAILABLE)


class GroundInventoryEndpointsTest(TransloadAPITestCase):

    def setUp(self):
        super().setUp()
        self.login_as(self.staff, 'admin')

    def test_list_with_summary(self):
        GroundInventoryLot.objects.create(
            customer=self.customer_a, material=self.material_a,
            source_type=GroundInventoryLot.SOURCE_MANUAL_ADJUSTMENT,
            starting_weight=Decimal('50'), remaining_weight=Decimal('50'),
            status=GroundInventoryLot.STATUS_ARCHIVED,
        )

        response = self.client.get('/api/ground-inventory/')

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(len(body['lots']), 2)
        self.assertEqual([row['material_name'] for row in body['summary_by_material']], ['Bag Lime', 'Frac Sand'])
        self.assertEqual(Decimal(str(body['totals']['total_remaining_weight'])), Decimal('1700'))

        response = self.client.get('/api/ground-inventory/', {'include_all_statuses': 'true'})
        self.assertEqual(len(response.json()['lots']), 3)

        response = self.client.get('/api/ground-inventory/', {'status': 'archived'})
        self.assertEqual(len(response.json()['lots']), 1)

    def test_create_adjustment(self):
        response = self.post_json('/api/ground-inventory/adjustments/', {
            'customer': self.customer_a.pk, 'material': self.material_a.pk,
            'starting_weight': '2500', 'notes': 'Yard count',
        })

        self.assertEqual(response.status_code, 201)
        lot = response.json()['lot']
        self.assertEqual(Decimal(lot['remaining_weight']), Decimal('2500'))
        self.assertEqual(lot['source_type'], GroundInventoryLot.SOURCE_MANUAL_ADJUSTMENT)

    def test_create_adjustment_with_foreign_material(self):
        response = self.post_json('/api/ground-inventory/adjustments/', {
            'customer': self.customer_a.pk, 'material': self.material_b.pk, 'starting_weight': '10',
        })
        self.assertEqual(response.status_code, 400)

    def test_update_and_delete_adjustment(self):
        url = f'/api/ground-inventory/adjustments/{self.lot_a.pk}/'
        response = self.put_json(url, {
            'customer': self.customer_a.pk, 'material': self.material_a.pk,
            'starting_weight': '1200', 'remaining_weight': '1100',
        })
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(response.json()['lot']['remaining_weight']), Decimal('1100'))

        response = self.client.delete(url)
        self.assertEqual(response.status_code, 200)
        self.assertFalse(GroundInventoryLot.objects.filter(pk=self.lot_a.pk).exists())

    def test_delete_adjustment_with_allocations_conflicts(self):
        self.draft_a.inventory_source = BOL.SOURCE_GROUND
        self.draft_a.ground_inventory_lot = self.lot_a
        self.draft_a.save()
        self.put_json(f'/api/bols/{self.draft_a.pk}/complete/', self.completion())

        response = self.client.delete(f'/api/ground-inventory/adjustments/{self.lot_a.pk}/')

        self.assertEqual(response.status_code, 409)

    def test_allocations_listing(self):
        self.draft_a.inventory_source = BOL.SOURCE_GROUND
        self.draft_a.ground_inventory_lot = self.lot_a
        self.draft_a.save()
        self.put_json(f'/api/bols/{self.draft_a.pk}/complete/', self.completion())

        response = self.client.get('/api/ground-inventory/allocations/', {'lot': self.lot_a.pk})

        self.assertEqual(response.status_code, 200)
        rows = response.json()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['bol'], self.draft_a.pk)
        self.assertEqual(GroundInventoryAllocation.objects.count(), 1)

    def test_adjustment_records_source_railcar_number(self):
        response = self.post_json('/api/ground-inventory/adjustments/', {
            'customer': self.customer_a.pk, 'material': self.material_a.pk,
            'starting_weight': '400', 'source_railcar_number': ' TILX 100 ',
        })

        self.assertEqual(response.status_code, 201)
        lot = response.json()['lot']
        self.assertEqual(lot['source_railcar_number'], 'TILX 100')
        self.assertIsNone(lot['source_railcar'])

    def test_refilling_drawn_lot_is_refused(self):
        self.draft_a.inventory_source = BOL.SOURCE_GROUND
        self.draft_a.ground_inventory_lot = self.lot_a
        self.draft_a.save()
        self.put_json(f'/api/bols/{self.draft_a.pk}/complete/', self.completion())

        response = self.put_json(f'/api/ground-inventory/adjustments/{self.lot_a.pk}/', {
            'customer': self.customer_a.pk, 'material': self.material_a.pk,
            'starting_weight': '1000', 'remaining_weight': '1000',
        })

        self.assertEqual(response.status_code, 400)
        self.lot_a.refresh_from_db()
        self.assertEqual(self.lot_a.remaining_weight, Decimal('500'))

    def test_archive_unused_lot(self):
        response = self.put_json(f'/api/ground-inventory/lots/{self.lot_a.pk}/archive/', {})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['lot']['status'], GroundInventoryLot.STATUS_ARCHIVED)
        self.lot_a.refresh_from_db()
        self.assertEqual(self.lot_a.status, GroundInventoryLot.STATUS_ARCHIVED)
        self.assertTrue(AuditLog.objects.filter(
            action='GROUND_INVENTORY_LOT_ARCHIVED', object_id=str(self.lot_a.pk)
        ).exists())

        response = self.client.get('/api/ground-inventory/')
        self.assertNotIn(self.lot_a.pk, [lot['id'] for lot in response.json()['lots']])

    def test_archive_lot_with_allocations_conflicts(self):
        self.draft_a.inventory_source = BOL.SOURCE_GROUND
        self.draft_a.ground_inventory_lot = self.lot_a
        self.draft_a.save()
        self.put_json(f'/api/bols/{self.draft_a.pk}/complete/', self.completion())

        response = self.put_json(f'/api/ground-inventory/lots/{self.lot_a.pk}/archive/', {})

        self.assertEqual(response.status_code, 409)
        self.lot_a.refresh_from_db()
        self.assertEqual(self.lot_a.status, GroundInventoryLot.STATUS_AVAILABLE)

    def test_archive_unknown_lot(self):
        response = self.put_json('/api/ground-inventory/lots/987654/archive/', {})
        self.assertEqual(response.status_code, 404)

    def test_archive_requires_staff_role(self):
        self.login_as(self.customer_user, 'customer')
        response = self.put_json(f'/api/ground-inventory/lots/{self.lot_a.pk}/archive/', {})
        self.assertEqual(response.status_code, 403)

    def test_adjustments_require_staff_role(self):
        self.login_as(self.customer_user, 'customer')
        response = self.post_json('/api/ground-inventory/adjustments/', {
            'customer': self.customer_a.pk, 'material': self.material_a.pk, 'starting_weight': '10',
        })
        self.assertEqual(response.status_code, 403)


class CustomerScopeTest(TransloadAPITestCase):

    def setUp(self):
        super().setUp()
        self.login_as(self.customer_user, 'customer')

    def test_bol_list_is_scoped(self):
        response = self.client.get('/api/bols/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual([row['id'] for row in response.json()], [self.draft_a.pk])

    def test_other_customers_bol_is_not_found(self):
        response = self.client.get(f'/api/bols/{self.draft_b.pk}/')
        self.assertEqual(response.status_code, 404)

    def test_customer_cannot_write(self):
        response = self.put_json(f'/api/bols/{self.draft_a.pk}/complete/', self.completion())
        self.assertEqual(response.status_code, 403)
        response = self.post_json('/api/bols/', {'order': self.order_a.pk})
        self.assertEqual(response.status_code, 403)
        response = self.client.delete(f'/api/bols/{self.draft_a.pk}/')
        self.assertEqual(response.status_code, 403)

    def test_ground_inventory_is_scoped(self):
        response = self.client.get('/api/ground-inventory/')
        lot_ids = [lot['id'] for lot in response.json()['lots']]
        self.assertEqual(lot_ids, [self.lot_a.pk])

    def test_user_without_access_sees_nothing(self):
        stranger = User.objects.create_user(username='stranger', email='stranger@else.test', password='x')
        self.login_as(stranger, 'customer')

        response = self.client.get('/api/bols/')

        self.assertEqual(response.json(), [])

    def test_inactive_customer_drops_out_of_scope(self):
        self.customer_a.is_active = False
        self.customer_a.save()

        response = self.client.get('/api/bols/')

        self.assertEqual(response.json(), [])
