from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework.response import Response
from django.db import connection
from django.db.models import Q
from .models import BOL, Railcar, GroundInventoryLot, GroundInventoryAllocation, AuditLog
from .serializers import (
    BOLSerializer, BOLCreateSerializer, BOLCompletionSerializer, RailcarSerializer,
    GroundInventoryLotSerializer, GroundInventoryAllocationSerializer, GroundInventoryAdjustmentSerializer,
)
from .exceptions import DomainError
from .security import get_customer_filter, validate_customer_access
from .services import BOLLifecycleService, InventoryLedger, ReleaseConversionService
from transload_project.decorators import require_role, require_role_for_writes
import logging

logger = logging.getLogger(__name__)

LOT_STATUSES = (
    GroundInventoryLot.STATUS_AVAILABLE,
    GroundInventoryLot.STATUS_DEPLETED,
    GroundInventoryLot.STATUS_ARCHIVED,
)


def _ip_of(request):
    xff = request.META.get('HTTP_X_FORWARDED_FOR')
    if xff:
        return xff.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', '')


def audit(request, action: str, obj=None, message: str = '', extra: dict | None = None):
    try:
        AuditLog.objects.create(
            action=action,
            object_type=(obj.__class__.__name__ if obj is not None else ''),
            object_id=(str(getattr(obj, 'id', '') or getattr(obj, 'pk', '') or '')),
            message=message,
            user_email=(getattr(request.user, 'email', '') or getattr(request.user, 'username', '')),
            ip=_ip_of(request),
            method=getattr(request, 'method', ''),
            path=getattr(request, 'path', ''),
            user_agent=request.META.get('HTTP_USER_AGENT', '')[:300],
            extra=extra
        )
    except Exception as e:
        logger.warning(f"Audit log failed: {e}")


def _domain_error(e: DomainError):
    return Response(e.as_response_data(), status=e.status_code)


def _server_error(view_name, e):
    logger.error(f"Error in {view_name}: {str(e)}", exc_info=True)
    return Response(
        {'error': 'An unexpected error occurred'},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )


def _positive_int(value):
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _request_data(request):
    data = request.data
    return data.dict() if hasattr(data, 'dict') else dict(data)


# Health check endpoint (no auth required for monitoring)
@api_view(['GET'])
@permission_classes([AllowAny])
def health_check(request):
    """Health check endpoint for monitoring and deployment verification"""
    try:
        connection.ensure_connection()
        return Response({
            'status': 'healthy',
            'database': 'connected',
            'service': 'transload'
        })
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}")
        return Response({
            'status': 'unhealthy',
            'error': str(e)
        }, status=status.HTTP_503_SERVICE_UNAVAILABLE)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@require_role_for_writes('admin', 'internal')
def bol_list(request):
    """
    GET: BOLs visible to the caller (customer users see their customers only).
    Filters: customer, status, railcar_id, rail_shipment_bol_number, order.

    POST: create a Draft BOL, or a Completed one when status=Completed.
    """
    if request.method == 'POST':
        serializer = BOLCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({'error': 'Invalid input data', 'errors': serializer.errors},
                            status=status.HTTP_400_BAD_REQUEST)
        try:
            bol = BOLLifecycleService.create_bol(serializer.validated_data, request.user)
        except DomainError as e:
            return _domain_error(e)
        except Exception as e:
            return _server_error('bol_list', e)

        audit(request, 'BOL_CREATED', bol, f"BOL {bol.pk} created as {bol.status}",
              {'inventory_source': bol.inventory_source, 'net_weight': str(bol.net_weight)})
        return Response({'message': 'BOL created successfully', 'bol': BOLSerializer(bol).data},
                        status=status.HTTP_201_CREATED)

    try:
        bols = BOL.objects.filter(**get_customer_filter(request)).select_related(
            'order', 'customer', 'project', 'material'
        )

        customer_param = request.GET.get('customer')
        if customer_param:
            customer_id = _positive_int(customer_param)
            if customer_id is None:
                return Response({'error': 'Invalid customer query parameter'}, status=status.HTTP_400_BAD_REQUEST)
            bols = bols.filter(customer_id=customer_id)

        status_param = (request.GET.get('status') or '').strip()
        if status_param:
            bols = bols.filter(status__iexact=status_param)

        railcar_param = (request.GET.get('railcar_id') or '').strip()
        if railcar_param:
            bols = bols.filter(Q(railcar_id__iexact=railcar_param) | Q(secondary_railcar_id__iexact=railcar_param))

        shipment_param = (request.GET.get('rail_shipment_bol_number') or '').strip()
        if shipment_param:
            bols = bols.filter(
                Q(rail_shipment_bol_number=shipment_param) | Q(secondary_rail_shipment_bol_number=shipment_param)
            )

        order_param = request.GET.get('order')
        if order_param:
            order_id = _positive_int(order_param)
            if order_id is None:
                return Response({'error': 'Invalid order query parameter'}, status=status.HTTP_400_BAD_REQUEST)
            bols = bols.filter(order_id=order_id)

        return Response(BOLSerializer(bols, many=True).data)
    except Exception as e:
        return _server_error('bol_list', e)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated])
@require_role_for_writes('admin', 'internal')
def bol_detail(request, bol_id):
    """GET a BOL; PUT edits a Draft; DELETE removes a Draft. Completed BOLs are locked."""
    try:
        bol = BOL.objects.filter(**get_customer_filter(request)).select_related(
            'order', 'customer', 'project', 'material'
        ).get(id=bol_id)
    except BOL.DoesNotExist:
        return Response({'error': 'BOL not found'}, status=status.HTTP_404_NOT_FOUND)

    try:
        if request.method == 'GET':
            return Response(BOLSerializer(bol).data)

        if request.method == 'PUT':
            bol = BOLLifecycleService.update_bol(bol.pk, _request_data(request), request.user)
            audit(request, 'BOL_UPDATED', bol, f"Draft BOL {bol.pk} updated",
                  {'fields': sorted(_request_data(request))})
            return Response({'message': 'BOL updated successfully', 'bol': BOLSerializer(bol).data})

        BOLLifecycleService.delete_bol(bol.pk, request.user)
        audit(request, 'BOL_DELETED', None, f"Draft BOL {bol_id} deleted", {'bol_id': bol_id})
        return Response({'message': 'BOL deleted successfully'})
    except DomainError as e:
        return _domain_error(e)
    except Exception as e:
        return _server_error('bol_detail', e)


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
@require_role('admin', 'internal')
def complete_bol(request, bol_id):
    """Complete a Draft BOL: weigh data, driver signature and ground inventory consumption."""
    serializer = BOLCompletionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response({'error': 'Invalid input data', 'errors': serializer.errors},
                        status=status.HTTP_400_BAD_REQUEST)

    try:
        bol = BOLLifecycleService.complete_bol(bol_id, request.user, serializer.validated_data)
    except DomainError as e:
        logger.info(f"Completion of BOL {bol_id} refused: {e.message}")
        return _domain_error(e)
    except Exception as e:
        return _server_error('complete_bol', e)

    audit(request, 'BOL_COMPLETED', bol, f"BOL {bol.pk} completed", {
        'net_weight': str(bol.net_weight),
        'ton_weight': str(bol.ton_weight),
        'inventory_source': bol.inventory_source,
        'ground_inventory_lot': bol.ground_inventory_lot_id,
        'secondary_ground_inventory_lot': bol.secondary_ground_inventory_lot_id,
    })
    return Response({'message': 'BOL completed successfully', 'bol': BOLSerializer(bol).data})


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
@require_role('admin', 'internal', 'customer')
def railcar_release_empty(request, railcar_id):
    """Release an Available railcar as empty; residual weight may become a ground inventory lot."""
    try:
        railcar = Railcar.objects.select_related('customer').get(id=railcar_id)
    except Railcar.DoesNotExist:
        return Response({'error': 'Railcar not found'}, status=status.HTTP_404_NOT_FOUND)

    if not validate_customer_access(request, railcar.customer_id):
        return Response({'error': 'Access forbidden: railcar is outside customer scope'},
                        status=status.HTTP_403_FORBIDDEN)

    try:
        railcar, lot = ReleaseConversionService.release_as_empty(railcar, actor=request.user)
    except DomainError as e:
        return _domain_error(e)
    except Exception as e:
        return _server_error('railcar_release_empty', e)

    audit(request, 'RAILCAR_RELEASED_EMPTY', railcar, f"Railcar {railcar.railcar_id} released as empty",
          {'ground_inventory_lot': lot.pk if lot else None})
    return Response({
        'message': 'Railcar released as empty',
        'railcar': RailcarSerializer(railcar).data,
        'ground_inventory_lot': GroundInventoryLotSerializer(lot).data if lot else None,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@require_role('admin', 'internal', 'customer')
def ground_inventory_list(request):
    """
    Ground inventory lots with a per-material summary.

    Archived lots are hidden unless ?status= names a status or
    ?include_all_statuses=true.
    """
    try:
        lots = GroundInventoryLot.objects.filter(**get_customer_filter(request)).select_related(
            'customer', 'material', 'location'
        )

        customer_param = request.GET.get('customer')
        if customer_param:
            customer_id = _positive_int(customer_param)
            if customer_id is None:
                return Response({'error': 'Invalid customer query parameter'}, status=status.HTTP_400_BAD_REQUEST)
            lots = lots.filter(customer_id=customer_id)

        material_param = request.GET.get('material')
        if material_param:
            material_id = _positive_int(material_param)
            if material_id is None:
                return Response({'error': 'Invalid material query parameter'}, status=status.HTTP_400_BAD_REQUEST)
            lots = lots.filter(material_id=material_id)

        status_param = (request.GET.get('status') or '').strip().lower()
        if status_param in LOT_STATUSES:
            lots = lots.filter(status=status_param)
        elif (request.GET.get('include_all_statuses') or '').lower() != 'true':
            lots = lots.exclude(status=GroundInventoryLot.STATUS_ARCHIVED)

        lots = list(lots)
        summary_by_material, totals = InventoryLedger.summarize_lots(lots)
        return Response({
            'lots': GroundInventoryLotSerializer(lots, many=True).data,
            'summary_by_material': summary_by_material,
            'totals': totals,
        })
    except Exception as e:
        return _server_error('ground_inventory_list', e)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@require_role('admin', 'internal')
def ground_inventory_adjustments(request):
    """Create a manual adjustment lot."""
    serializer = GroundInventoryAdjustmentSerializer(data=request.data)
    if not serializer.is_valid():
        return Response({'error': 'Invalid input data', 'errors': serializer.errors},
                        status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        lot = InventoryLedger.create_adjustment_lot(
            data['customer'],
            data['material'],
            data['starting_weight'],
            remaining_weight=data.get('remaining_weight'),
            source_railcar_number=data.get('source_railcar_number', ''),
            notes=data.get('notes', ''),
            actor=request.user,
        )
    except DomainError as e:
        return _domain_error(e)
    except Exception as e:
        return _server_error('ground_inventory_adjustments', e)

    audit(request, 'GROUND_INVENTORY_ADJUSTMENT_CREATED', lot,
          f"Adjustment lot {lot.pk} created with {lot.remaining_weight}/{lot.starting_weight} lbs")
    return Response({'message': 'Ground inventory adjustment created', 'lot': GroundInventoryLotSerializer(lot).data},
                    status=status.HTTP_201_CREATED)


@api_view(['PUT', 'DELETE'])
@permission_classes([IsAuthenticated])
@require_role('admin', 'internal')
def ground_inventory_adjustment_detail(request, lot_id):
    try:
        lot = GroundInventoryLot.objects.get(id=lot_id)
    except GroundInventoryLot.DoesNotExist:
        return Response({'error': 'Ground inventory lot not found'}, status=status.HTTP_404_NOT_FOUND)

    try:
        if request.method == 'DELETE':
            InventoryLedger.delete_adjustment_lot(lot)
            audit(request, 'GROUND_INVENTORY_ADJUSTMENT_DELETED', None, f"Adjustment lot {lot_id} deleted",
                  {'lot_id': lot_id})
            return Response({'message': 'Ground inventory adjustment deleted'})

        serializer = GroundInventoryAdjustmentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({'error': 'Invalid input data', 'errors': serializer.errors},
                            status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data
        lot = InventoryLedger.update_adjustment_lot(
            lot,
            data['customer'],
            data['material'],
            data['starting_weight'],
            data.get('remaining_weight'),
            source_railcar_number=data.get('source_railcar_number', ''),
            notes=data.get('notes', ''),
        )
        audit(request, 'GROUND_INVENTORY_ADJUSTMENT_UPDATED', lot,
              f"Adjustment lot {lot.pk} updated to {lot.remaining_weight}/{lot.starting_weight} lbs")
        return Response({'message': 'Ground inventory adjustment updated', 'lot': GroundInventoryLotSerializer(lot).data})
    except DomainError as e:
        return _domain_error(e)
    except Exception as e:
        return _server_error('ground_inventory_adjustment_detail', e)


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
@require_role('admin', 'internal')
def ground_inventory_lot_archive(request, lot_id):
    """Archive a lot that was never drawn from."""
    try:
        lot = GroundInventoryLot.objects.get(id=lot_id)
    except GroundInventoryLot.DoesNotExist:
        return Response({'error': 'Ground inventory lot not found'}, status=status.HTTP_404_NOT_FOUND)

    try:
        lot = InventoryLedger.archive_lot(lot)
        audit(request, 'GROUND_INVENTORY_LOT_ARCHIVED', lot, f"Lot {lot.pk} archived")
        return Response({'message': 'Ground inventory lot archived', 'lot': GroundInventoryLotSerializer(lot).data})
    except DomainError as e:
        return _domain_error(e)
    except Exception as e:
        return _server_error('ground_inventory_lot_archive', e)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@require_role('admin', 'internal')
def ground_inventory_allocations(request):
    """Allocation history. Filters: customer, bol, lot."""
    allocations = GroundInventoryAllocation.objects.select_related(
        'customer', 'material', 'bol__order', 'created_by'
    )
    for param, field in (('customer', 'customer_id'), ('bol', 'bol_id'), ('lot', 'lot_id')):
        value = request.GET.get(param)
        if value:
            value_id = _positive_int(value)
            if value_id is None:
                return Response({'error': f'Invalid {param} query parameter'}, status=status.HTTP_400_BAD_REQUEST)
            allocations = allocations.filter(**{field: value_id})

    try:
        return Response(GroundInventoryAllocationSerializer(allocations, many=True).data)
    except Exception as e:
        return _server_error('ground_inventory_allocations', e)
