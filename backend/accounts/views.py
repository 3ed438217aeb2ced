from drf_spectacular.utils import extend_schema
from rest_framework import response, views

from .serializers import UserSerializer


@extend_schema(responses=UserSerializer)
class MeView(views.APIView):
    serializer_class = UserSerializer

    def get(self, request):
        return response.Response(UserSerializer(request.user).data)
