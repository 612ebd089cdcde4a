import logging

from django.db.models import Q
from django.http import HttpResponse
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, IsAdminUser

from accounts.permissions import IsFleetOwner
from common.utils import engine_error_response
from drivers.serializers import DriverRatingSerializer, PostTripAvailabilitySerializer
from services.agreements import TLASigningEngine, TripTracker, render_tla_text
from services.core import LeaseEngineError
from services.ratings import RatingAggregator
from .models import TripLeaseAgreement
from .serializers import (
    TripLeaseAgreementSerializer,
    SignAgreementSerializer,
    VoidAgreementSerializer,
    RateDriverSerializer,
)

logger = logging.getLogger(__name__)


def _visible_agreements(user):
    if user.is_staff:
        return TripLeaseAgreement.objects.all()
    return TripLeaseAgreement.objects.filter(Q(lessor_owner=user) | Q(lessee_owner=user))


def _not_found():
    return Response(
        {'success': False, 'error': 'not_found', 'message': 'Trip Lease Agreement not found'},
        status=status.HTTP_404_NOT_FOUND
    )


def _audit_context(request):
    """IP address and user agent recorded with a signature"""
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR', '')
    ip_address = forwarded.split(',')[0].strip() if forwarded else request.META.get('REMOTE_ADDR', '')
    return {
        'ip_address': ip_address,
        'user_agent': request.META.get('HTTP_USER_AGENT', ''),
    }


def _agreement_response(result, **extra):
    body = {
        'success': True,
        'message': result.message,
        'agreement': TripLeaseAgreementSerializer(result.record).data,
    }
    body.update(extra)
    return Response(body)


# ==================== Agreement APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFleetOwner])
def create_agreement(request, match_id):
    """Generate the Trip Lease Agreement for an accepted match"""
    try:
        result = TLASigningEngine().create_for_match(match_id=match_id, actor_id=request.user.id)
    except LeaseEngineError as e:
        return engine_error_response(e)

    response = _agreement_response(result)
    response.status_code = status.HTTP_201_CREATED
    return response


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def agreement_detail(request, tla_id):
    """Get one agreement the user is a party to"""
    tla = _visible_agreements(request.user).filter(id=tla_id).first()
    if not tla:
        return _not_found()
    return Response(TripLeaseAgreementSerializer(tla).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def agreement_text(request, tla_id):
    """Plain-text rendering of the agreement"""
    tla = _visible_agreements(request.user).filter(id=tla_id).first()
    if not tla:
        return _not_found()
    return HttpResponse(render_tla_text(tla), content_type='text/plain; charset=utf-8')


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFleetOwner])
def sign_agreement(request, tla_id):
    """Sign as lessor or lessee"""
    serializer = SignAgreementSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        result = TLASigningEngine().sign(
            tla_id=tla_id,
            actor_id=request.user.id,
            role=data['role'],
            signature_name=data['signature_name'],
            audit_context=_audit_context(request),
            insurance_option=data.get('insurance_option'),
            locations=data.get('locations'),
        )
    except LeaseEngineError as e:
        return engine_error_response(e)

    return _agreement_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminUser])
def void_agreement(request, tla_id):
    """Void an agreement (staff only)"""
    serializer = VoidAgreementSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        result = TLASigningEngine().void(
            tla_id=tla_id,
            actor_id=request.user.id,
            reason=serializer.validated_data.get('reason', ''),
        )
    except LeaseEngineError as e:
        return engine_error_response(e)

    return _agreement_response(result)


# ==================== Trip APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFleetOwner])
def start_trip(request, tla_id):
    """Start the trip on a signed agreement"""
    try:
        result = TripTracker().start(tla_id=tla_id, actor_id=request.user.id, actor_name=request.user.display_name)
    except LeaseEngineError as e:
        return engine_error_response(e)

    return _agreement_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFleetOwner])
def end_trip(request, tla_id):
    """End the trip and record its duration"""
    try:
        result = TripTracker().end(tla_id=tla_id, actor_id=request.user.id, actor_name=request.user.display_name)
    except LeaseEngineError as e:
        return engine_error_response(e)

    return _agreement_response(result, **result.extra)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFleetOwner])
def post_trip_availability(request, tla_id):
    """Mark the driver available or off duty after the trip"""
    serializer = PostTripAvailabilitySerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        result = TripTracker().set_post_trip_availability(
            tla_id=tla_id,
            mark_available=serializer.validated_data['mark_available'],
            actor_id=request.user.id,
        )
    except LeaseEngineError as e:
        return engine_error_response(e)

    return Response({
        'success': True,
        'message': result.message,
        'availability': result.extra['availability'],
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFleetOwner])
def rate_driver(request, tla_id):
    """Lessee rates the driver after a completed trip"""
    serializer = RateDriverSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        result = RatingAggregator().rate_driver(
            tla_id=tla_id,
            rater_id=request.user.id,
            rating=data['rating'],
            comment=data.get('comment'),
        )
    except LeaseEngineError as e:
        return engine_error_response(e)

    return Response({
        'success': True,
        'message': result.message,
        'driver': DriverRatingSerializer(result.record).data,
    })
