from django.contrib import admin
from django.urls import path, include
from django.conf import settings

admin_url = settings.ADMIN_URL.strip("/") + "/"

urlpatterns = [
    path(admin_url, admin.site.urls),

    # Core Apps
    path('api/v1/auth/', include('apps.accounts.urls')),
    path('api/v1/catalog/', include('apps.catalog.urls')),
    path('api/v1/payments/', include('apps.payments.urls')),
    path('api/v1/utils/', include('apps.utils.urls')),
    path('api/v1/', include('apps.orders.urls')),
]
