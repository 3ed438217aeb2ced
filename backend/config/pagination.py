from django.conf import settings
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response

PAGINATION_TRIGGERS = ("page", "page_size")


class BrokerPageNumberPagination(PageNumberPagination):
    page_size = getattr(settings, "API_PAGINATION_DEFAULT_PAGE_SIZE", 50)
    page_size_query_param = "page_size"
    max_page_size = getattr(settings, "API_PAGINATION_MAX_PAGE_SIZE", 200)


class OptionalPaginationListMixin:
    """List endpoints return a plain array unless the client asks for a page."""

    pagination_class = BrokerPageNumberPagination

    def list(self, request, *args, **kwargs):
        queryset = self.filter_queryset(self.get_queryset())
        if any(param in request.query_params for param in PAGINATION_TRIGGERS):
            page = self.paginate_queryset(queryset)
            if page is not None:
                return self.get_paginated_response(self.get_serializer(page, many=True).data)
        return Response(self.get_serializer(queryset, many=True).data)
