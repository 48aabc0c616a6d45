"""
Helpers for the ``{success, data?, message?}`` response envelope.
"""

from rest_framework import status
from rest_framework.response import Response


def success_response(data=None, message=None, status_code=status.HTTP_200_OK, **extra):
    """
    Build a successful envelope response.

    Extra keyword arguments (e.g. total, limit, offset) are added at the top level.
    """
    body = {'success': True}
    if data is not None:
        body['data'] = data
    if message:
        body['message'] = message
    body.update(extra)
    return Response(body, status=status_code)

