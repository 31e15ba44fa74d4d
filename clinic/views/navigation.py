from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..navigation import allowed_routes, find_route, can_access_route, sidebar_visibility
from ..permissions import request_grants
from ..services.authorization import AuthorizationPolicy


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def navigation(request):
    """Sidebar tree for the current user, or a single-route check with ``?path=``."""
    user = request.user
    grants = request_grants(request)
    policy = AuthorizationPolicy.from_settings()
    path = request.query_params.get('path')
    if path:
        route = find_route(path)
        if route is None:
            return Response({'ok': False, 'error': {'code': 'not_found', 'message': f'Unknown route {path}'}},
                            status=404)
        return Response({'ok': True, 'path': path,
                         'allowed': can_access_route(user.user_type, grants, route, policy)})
    return Response({
        'ok': True,
        'data': sidebar_visibility.sidebar(user.user_type, grants, policy),
        'allowedPaths': [r.path for r in allowed_routes(user.user_type, grants, policy)],
    })
