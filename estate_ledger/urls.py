"""URL routing for the settlement API + the local chain stub.

The /api/ namespace exposes settlement operations; /stub/chain/ exposes the
deterministic ledger stub behind the same submit contract as the real gateway.
"""

from django.contrib import admin
from django.urls import path, include


urlpatterns = [
	path("admin/", admin.site.urls),
	path("api/", include("api.urls")),
	path("stub/chain/", include("chain_stub.urls")),
]
