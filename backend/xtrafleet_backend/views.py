from django.conf import settings
from django.db import connection
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
import redis

from matches.models import Match, NEGOTIABLE_STATUSES


def _check_database():
    connection.ensure_connection()
    overdue = Match.objects.filter(status__in=NEGOTIABLE_STATUSES, expires_at__lt=timezone.now()).count()
    return {"overdue_open_matches": overdue}


def _check_broker():
    broker_url = settings.CELERY_BROKER_URL
    if not broker_url.startswith(("redis://", "rediss://")):
        return {"skipped": broker_url.split(":", 1)[0]}
    redis.Redis.from_url(broker_url, socket_timeout=3).ping()
    return {}


HEALTH_CHECKS = (
    ("database", _check_database),
    ("broker", _check_broker),
)


@api_view(["GET"])
@permission_classes([AllowAny])
def health_check(request):
    """
    Database and Celery broker reachability.

    The database entry also reports how many open offers are past their
    expiry, which grows when the sweep task is not running.
    """
    report = {"status": "healthy", "timestamp": timezone.now().isoformat(), "services": {}}

    for name, check in HEALTH_CHECKS:
        try:
            report["services"][name] = {"status": "healthy", **check()}
        except Exception as e:
            report["services"][name] = {"status": f"unhealthy: {e}"}
            report["status"] = "unhealthy"

    code = status.HTTP_200_OK if report["status"] == "healthy" else status.HTTP_503_SERVICE_UNAVAILABLE
    return Response(report, status=code)
