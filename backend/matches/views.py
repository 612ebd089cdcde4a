from django.db.models import Q
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from accounts.permissions import IsFleetOwner
from common.utils import engine_error_response
from drivers.models import Driver
from loads.models import Load
from services.core import LeaseEngineError
from services.matching import find_matching_drivers
from services.negotiation import MatchNegotiationEngine
from .models import Match
from .serializers import (
    MatchSerializer,
    MatchCreateSerializer,
    MatchResponseSerializer,
)


def _visible_matches(user):
    if user.is_staff:
        return Match.objects.all()
    return Match.objects.filter(Q(load_owner=user) | Q(driver_owner=user))


# ==================== Match Negotiation APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFleetOwner])
def create_match(request):
    """Send a match request to the other fleet"""
    serializer = MatchCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        result = MatchNegotiationEngine().create(
            initiated_by=data['initiated_by'],
            initiator_id=request.user.id,
            load_id=data['load_id'],
            driver_id=data['driver_id'],
            terms=data['terms'],
        )
    except LeaseEngineError as e:
        return engine_error_response(e)

    return Response({
        'success': True,
        'message': result.message,
        'match': MatchSerializer(result.record).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def match_detail(request, match_id):
    """Get one match the user is a party to"""
    match = _visible_matches(request.user).filter(id=match_id).first()
    if not match:
        return Response(
            {'success': False, 'error': 'not_found', 'message': 'Match not found'},
            status=status.HTTP_404_NOT_FOUND
        )
    return Response(MatchSerializer(match).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFleetOwner])
def respond_to_match(request, match_id):
    """Accept, decline or counter a match offer"""
    serializer = MatchResponseSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        result = MatchNegotiationEngine().respond(
            match_id=match_id,
            actor_id=request.user.id,
            action=data['action'],
            reason=data.get('reason'),
            terms=data.get('terms'),
        )
    except LeaseEngineError as e:
        return engine_error_response(e)

    return Response({
        'success': True,
        'message': result.message,
        'match': MatchSerializer(result.record).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFleetOwner])
def cancel_match(request, match_id):
    """Withdraw a match request (initiator only)"""
    try:
        result = MatchNegotiationEngine().cancel(match_id=match_id, actor_id=request.user.id)
    except LeaseEngineError as e:
        return engine_error_response(e)

    return Response({
        'success': True,
        'message': result.message,
        'match': MatchSerializer(result.record).data,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsFleetOwner])
def candidate_drivers(request, load_id):
    """Rank other fleets' available drivers for one of the user's loads"""
    load = Load.objects.filter(id=load_id, owner=request.user).first()
    if not load:
        return Response(
            {'success': False, 'error': 'not_found', 'message': 'Load not found'},
            status=status.HTTP_404_NOT_FOUND
        )

    drivers = Driver.objects.exclude(owner=request.user).select_related('owner')
    candidates = find_matching_drivers(load, drivers, timezone.localdate())

    return Response({
        'load_id': load.id,
        'count': len(candidates),
        'candidates': [
            {
                'driver_id': c.driver.id,
                'driver_name': c.driver.name,
                'owner_id': c.driver.owner_id,
                'score': c.score.total,
                'compliance': c.compliance,
                'breakdown': {
                    'vehicle_match': c.score.vehicle_match,
                    'qualification_match': c.score.qualification_match,
                    'location_score': c.score.location_score,
                    'rating_score': c.score.rating_score,
                    'compliance_score': c.score.compliance_score,
                },
            }
            for c in candidates
        ],
    })
