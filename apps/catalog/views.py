from django.http import Http404
from rest_framework import viewsets, filters
from rest_framework.exceptions import NotFound
from rest_framework.permissions import AllowAny
from django_filters.rest_framework import DjangoFilterBackend

from .models import Product
from .serializers import ProductSerializer


class ProductViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Public product list and detail.
    Filters: ?category=perfume&featured=true&brand=Maison Noir
    """
    queryset = Product.objects.all()
    serializer_class = ProductSerializer
    permission_classes = [AllowAny]
    authentication_classes = []
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ['category', 'featured', 'brand']
    ordering_fields = ['price', 'name', 'created_at']

    def get_object(self):
        try:
            return super().get_object()
        except Http404:
            raise NotFound("Product not found")
