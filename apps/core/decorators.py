from functools import wraps

from django.http import JsonResponse


def resident_required(view_func):
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({"error": "Authentication required."}, status=401)
        if request.user.role != "resident":
            return JsonResponse({"error": "Access denied."}, status=403)
        return view_func(request, *args, **kwargs)
    return wrapper


def admin_required(view_func):
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({"error": "Authentication required."}, status=401)
        if request.user.role not in ("admin", "staff"):
            return JsonResponse({"error": "Access denied."}, status=403)
        return view_func(request, *args, **kwargs)
    return wrapper
