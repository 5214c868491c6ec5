from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from apps.utils.throttle import BurstRateThrottle

from .services import AuthService
from .serializers import LoginSerializer, SignupSerializer, UserSerializer


def _session_response(result, status_code):
    return Response({
        "success": True,
        "data": {
            "user": UserSerializer(result['user']).data,
            "refresh": result['refresh'],
            "access": result['access'],
        }
    }, status=status_code)


class SignupView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [BurstRateThrottle]

    def post(self, request):
        serializer = SignupSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = AuthService.signup(**serializer.validated_data)
        return _session_response(result, status.HTTP_201_CREATED)


class LoginView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [BurstRateThrottle]

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = AuthService.login(
            email=serializer.validated_data['email'],
            password=serializer.validated_data['password'],
        )
        return _session_response(result, status.HTTP_200_OK)


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response({"success": True, "data": UserSerializer(request.user).data})
