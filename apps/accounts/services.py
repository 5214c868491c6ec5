import logging

from django.contrib.auth import authenticate, get_user_model
from django.db import IntegrityError, transaction
from rest_framework_simplejwt.tokens import RefreshToken

from apps.utils.exceptions import BusinessLogicException, InvalidCredentials

logger = logging.getLogger(__name__)
User = get_user_model()


class AuthService:
    """
    Email + password accounts. The normalised email doubles as the username,
    so simplejwt's stock token endpoint accepts it too.
    """

    @staticmethod
    def _tokens_for(user) -> dict:
        refresh = RefreshToken.for_user(user)
        return {
            'refresh': str(refresh),
            'access': str(refresh.access_token),
        }

    @staticmethod
    def signup(email: str, password: str, full_name: str) -> dict:
        email = User.objects.normalize_email(email).lower()
        if User.objects.filter(email__iexact=email).exists():
            raise BusinessLogicException("An account with this email already exists", code="email_taken")

        try:
            with transaction.atomic():
                user = User.objects.create_user(
                    username=email,
                    email=email,
                    password=password,
                    first_name=full_name,
                )
        except IntegrityError:
            # Lost a race with a concurrent signup for the same address
            raise BusinessLogicException("An account with this email already exists", code="email_taken")

        logger.info(f"New account {user.pk} signed up", extra={"user_id": user.pk})
        return {'user': user, **AuthService._tokens_for(user)}

    @staticmethod
    def login(email: str, password: str) -> dict:
        user = authenticate(username=User.objects.normalize_email(email).lower(), password=password)
        if user is None:
            logger.info("Failed login attempt")
            raise InvalidCredentials()
        return {'user': user, **AuthService._tokens_for(user)}
