"""Translate lease engine errors into API responses."""

import logging

from rest_framework.response import Response

logger = logging.getLogger(__name__)


def engine_error_response(error) -> Response:
    """
    Build the standard error envelope for a LeaseEngineError:
        {'success': False, 'error': <code>, 'message': <text>}
    """
    logger.info("Lease engine refused request: %s (%s)", error.code, error.message)
    return Response(
        {
            'success': False,
            'error': error.code,
            'message': error.message,
        },
        status=error.http_status,
    )
