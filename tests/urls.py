from django.http import HttpResponse
from django.urls import path


def whoami(request):
    user = request.user
    return HttpResponse(user.get_username() if user.is_authenticated else "anonymous")


urlpatterns = [
    path("whoami/", whoami),
]
