"""
Redis-based rate limiting for API endpoints.
Fixed window counter keyed by view name and caller (user, else client IP).
"""
import logging
from functools import wraps

import redis
from django.conf import settings
from rest_framework import status
from rest_framework.exceptions import Throttled
from rest_framework.response import Response

logger = logging.getLogger(__name__)

_redis_client = None
_redis_checked = False


def get_redis_client():
    """
    Return a shared Redis client, or None when Redis is unreachable.

    The connection is attempted once per process, on first use.
    """
    global _redis_client, _redis_checked
    if _redis_checked:
        return _redis_client

    _redis_checked = True
    try:
        client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5
        )
        client.ping()
        _redis_client = client
    except (redis.ConnectionError, redis.TimeoutError) as e:
        logger.warning(f"Redis connection failed: {e}. Rate limiting will be disabled.")
        _redis_client = None
    return _redis_client


def get_client_ip(request):
    """Extract client IP address from request."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', 'unknown')


def _limiting_enabled():
    return getattr(settings, 'RATE_LIMIT_ENABLED', True)


def _caller_identity(request):
    user = getattr(request, 'user', None)
    if user is not None and user.is_authenticated:
        return f"user:{user.pk}"
    return f"ip:{get_client_ip(request)}"


def _count(key, window_seconds):
    """
    Count one request against ``key``.

    Returns (current_count, ttl), or None when limiting is off or Redis
    is unavailable.
    """
    client = get_redis_client() if _limiting_enabled() else None
    if client is None:
        return None

    try:
        current_count = client.incr(key)
        if current_count == 1:
            client.expire(key, window_seconds)
        return current_count, client.ttl(key)
    except redis.RedisError as e:
        # Fail open
        logger.error(f"Redis error in rate limiting: {e}")
        return None


def _limit_headers(max_requests, current_count, ttl):
    return {
        'X-RateLimit-Limit': str(max_requests),
        'X-RateLimit-Remaining': str(max(0, max_requests - current_count)),
        'X-RateLimit-Reset': str(ttl),
    }


def rate_limit(max_requests: int = 20, window_seconds: int = 60):
    """
    Rate limiting decorator for DRF view methods.

    Runs inside the handler, after DRF authentication, so the window is
    per user for authenticated callers.

    Usage:
        @rate_limit(20, 60)  # 20 requests per minute
        def get(self, request):
            ...
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(self, request, *args, **kwargs):
            key = f"rate_limit:{view_func.__name__}:{_caller_identity(request)}"
            counted = _count(key, window_seconds)
            if counted is None:
                return view_func(self, request, *args, **kwargs)

            current_count, ttl = counted
            headers = _limit_headers(max_requests, current_count, ttl)
            if current_count > max_requests:
                logger.warning(f"Rate limit exceeded for {key}")
                headers['Retry-After'] = str(ttl)
                return Response(
                    {
                        'error': 'Rate limit exceeded',
                        'detail': f'Maximum {max_requests} requests per {window_seconds} seconds allowed.',
                        'retry_after': ttl
                    },
                    status=status.HTTP_429_TOO_MANY_REQUESTS,
                    headers=headers
                )

            response = view_func(self, request, *args, **kwargs)
            for header, value in headers.items():
                response[header] = value
            return response
        return wrapper
    return decorator


class RateLimitMixin:
    """
    Mixin for DRF class-based views; limits every method of the view.

    Requests are counted after authentication and permission checks, so
    rejected anonymous callers never use up a user's window.

    Usage:
        class MovementExportView(RateLimitMixin, APIView):
            rate_limit_max_requests = 5
            rate_limit_window_seconds = 60
    """
    rate_limit_max_requests = 20
    rate_limit_window_seconds = 60

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        self.rate_limit_headers = {}

        key = f"rate_limit:{self.__class__.__name__}:{_caller_identity(request)}"
        counted = _count(key, self.rate_limit_window_seconds)
        if counted is None:
            return

        current_count, ttl = counted
        self.rate_limit_headers = _limit_headers(self.rate_limit_max_requests, current_count, ttl)
        if current_count > self.rate_limit_max_requests:
            logger.warning(f"Rate limit exceeded for {key}")
            raise Throttled(
                wait=ttl,
                detail=(
                    f'Maximum {self.rate_limit_max_requests} requests per '
                    f'{self.rate_limit_window_seconds} seconds allowed.'
                )
            )

    def finalize_response(self, request, response, *args, **kwargs):
        response = super().finalize_response(request, response, *args, **kwargs)
        for header, value in getattr(self, 'rate_limit_headers', {}).items():
            response[header] = value
        return response
