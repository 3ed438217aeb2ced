from django.db.models import Q
from drf_spectacular.utils import extend_schema
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from accounts.permissions import IsBrokerAdmin, IsFinanceOrBrokerAdmin, IsStaffRole
from config.pagination import OptionalPaginationListMixin

from .change_orders import (
    approve_change_order,
    create_change_order,
    delete_change_order,
    effective_job_state,
    reject_change_order,
    submit_change_order,
    update_change_order,
)
from .exceptions import BrokerError
from .identifiers import finalize_all_execution_ids, finalize_execution_id
from .models import ChangeOrder, Job, JobAuditLog, ProfitSplit, PurchaseOrder
from .pathway import reclassify_pathway
from .readiness import (
    add_component,
    calculate_readiness,
    mark_job_sent,
    set_qc_flag,
    update_component_status,
)
from .serializers import (
    AllowNegativeMarginSerializer,
    ChangeOrderRejectSerializer,
    ChangeOrderSerializer,
    ChangeOrderWriteSerializer,
    ClassificationSerializer,
    ComponentStatusSerializer,
    EffectiveJobStateSerializer,
    FinalizeResultSerializer,
    JobAuditLogSerializer,
    JobBatchCreateSerializer,
    JobComponentSerializer,
    JobSerializer,
    JobWriteSerializer,
    ProfitSplitOverrideSerializer,
    ProfitSplitSerializer,
    PurchaseOrderCreateSerializer,
    PurchaseOrderSerializer,
    PurchaseOrderUpdateSerializer,
    QcFlagSerializer,
    ReadinessSerializer,
)
from .services import (
    clear_profit_split_override,
    create_job,
    create_jobs,
    create_purchase_order,
    delete_purchase_order,
    mark_invoice_generated,
    override_profit_split,
    recompute_profit_split,
    soft_delete_job,
    update_job,
    update_purchase_order,
)


def _error_response(exc: BrokerError) -> Response:
    return Response(exc.as_payload(), status=exc.status_code)


class JobViewSet(OptionalPaginationListMixin, viewsets.ModelViewSet):
    serializer_class = JobSerializer
    filterset_fields = ["pathway", "routing_type", "readiness_status", "job_meta_type"]

    finance_actions = {
        "recompute_profit_split",
        "override_profit_split",
        "clear_override",
        "mark_invoiced",
    }

    def get_queryset(self):
        queryset = (
            Job.objects.active()
            .select_related("mailing_vendor")
            .prefetch_related("components")
        )
        search_value = self.request.query_params.get("q", "").strip()
        if search_value:
            queryset = queryset.filter(
                Q(title__icontains=search_value)
                | Q(customer_name__icontains=search_value)
                | Q(job_number__iexact=search_value)
                | Q(base_job_id__iexact=search_value)
            )
        return queryset

    def get_serializer_class(self):
        if self.action in ["create", "update", "partial_update"]:
            return JobWriteSerializer
        if self.action == "batch":
            return JobBatchCreateSerializer
        return JobSerializer

    def get_permissions(self):
        if self.action == "destroy":
            return [IsBrokerAdmin()]
        if self.action in self.finance_actions:
            return [IsFinanceOrBrokerAdmin()]
        return [IsStaffRole()]

    def _job_response(self, job_id, status_code=status.HTTP_200_OK):
        job = self.get_queryset().get(id=job_id)
        return Response(JobSerializer(job, context={"request": self.request}).data, status=status_code)

    @extend_schema(request=JobWriteSerializer, responses=JobSerializer)
    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        fields = dict(serializer.validated_data)
        fields.pop("allow_negative_margin", None)
        try:
            job = create_job(actor=request.user, **fields)
        except BrokerError as exc:
            return _error_response(exc)
        return self._job_response(job.id, status.HTTP_201_CREATED)

    @extend_schema(request=JobBatchCreateSerializer, responses=JobSerializer(many=True))
    @action(detail=False, methods=["post"], url_path="batch")
    def batch(self, request):
        serializer = JobBatchCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        batch = []
        for item in serializer.validated_data["jobs"]:
            fields = dict(item)
            fields.pop("allow_negative_margin", None)
            batch.append(fields)
        try:
            jobs = create_jobs(batch, actor=request.user)
        except BrokerError as exc:
            return _error_response(exc)
        return Response(
            JobSerializer(jobs, many=True, context={"request": request}).data,
            status=status.HTTP_201_CREATED,
        )

    @extend_schema(request=JobWriteSerializer, responses=JobSerializer)
    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        job = self.get_object()
        serializer = self.get_serializer(job, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        changes = dict(serializer.validated_data)
        allow_negative_margin = changes.pop("allow_negative_margin", False)
        try:
            update_job(
                job.id,
                changes,
                actor=request.user,
                allow_negative_margin=allow_negative_margin,
            )
        except BrokerError as exc:
            return _error_response(exc)
        return self._job_response(job.id)

    def destroy(self, request, *args, **kwargs):
        job = self.get_object()
        try:
            soft_delete_job(job.id, actor=request.user)
        except BrokerError as exc:
            return _error_response(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(request=None, responses=ProfitSplitSerializer)
    @action(detail=True, methods=["get"], url_path="profit-split")
    def profit_split(self, request, pk=None):
        job = self.get_object()
        split = ProfitSplit.objects.filter(job=job).first()
        if split is None:
            return Response(
                {"detail": "No profit split calculated yet.", "code": "split_not_calculated"},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(ProfitSplitSerializer(split).data)

    @extend_schema(request=AllowNegativeMarginSerializer, responses=ProfitSplitSerializer)
    @action(detail=True, methods=["post"], url_path="recompute-profit-split")
    def recompute_profit_split(self, request, pk=None):
        job = self.get_object()
        serializer = AllowNegativeMarginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            outcome = recompute_profit_split(
                job.id,
                allow_negative_margin=serializer.validated_data["allow_negative_margin"],
                actor=request.user,
            )
        except BrokerError as exc:
            return _error_response(exc)
        payload = {
            "skipped": outcome.skipped,
            "skipped_reason": outcome.skipped_reason,
            "split": ProfitSplitSerializer(outcome.split).data if outcome.split else None,
        }
        return Response(payload)

    @extend_schema(request=ProfitSplitOverrideSerializer, responses=ProfitSplitSerializer)
    @action(detail=True, methods=["post"], url_path="override-profit-split")
    def override_profit_split(self, request, pk=None):
        job = self.get_object()
        serializer = ProfitSplitOverrideSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            split = override_profit_split(job.id, actor=request.user, **serializer.validated_data)
        except BrokerError as exc:
            return _error_response(exc)
        return Response(ProfitSplitSerializer(split).data)

    @extend_schema(request=AllowNegativeMarginSerializer, responses=ProfitSplitSerializer)
    @action(detail=True, methods=["post"], url_path="clear-override")
    def clear_override(self, request, pk=None):
        job = self.get_object()
        serializer = AllowNegativeMarginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            outcome = clear_profit_split_override(
                job.id,
                allow_negative_margin=serializer.validated_data["allow_negative_margin"],
                actor=request.user,
            )
        except BrokerError as exc:
            return _error_response(exc)
        return Response(ProfitSplitSerializer(outcome.split).data if outcome.split else {})

    @extend_schema(request=None, responses=ClassificationSerializer)
    @action(detail=True, methods=["post"], url_path="reclassify")
    def reclassify(self, request, pk=None):
        job = self.get_object()
        try:
            result = reclassify_pathway(job.id, actor=request.user)
        except BrokerError as exc:
            return _error_response(exc)
        return Response(ClassificationSerializer(result).data)

    @extend_schema(request=None, responses=FinalizeResultSerializer(many=True))
    @action(detail=True, methods=["post"], url_path="finalize-all")
    def finalize_all(self, request, pk=None):
        job = self.get_object()
        try:
            results = finalize_all_execution_ids(job.id, actor=request.user)
        except BrokerError as exc:
            return _error_response(exc)
        return Response(FinalizeResultSerializer(results, many=True).data)

    @extend_schema(request=None, responses=ReadinessSerializer)
    @action(detail=True, methods=["get"], url_path="readiness")
    def readiness(self, request, pk=None):
        job = self.get_object()
        result = calculate_readiness(job, job.components.all())
        return Response(ReadinessSerializer(result).data)

    @extend_schema(request=QcFlagSerializer, responses=ReadinessSerializer)
    @action(detail=True, methods=["post"], url_path="qc")
    def qc(self, request, pk=None):
        job = self.get_object()
        serializer = QcFlagSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            result = set_qc_flag(
                job.id,
                serializer.validated_data["concern"],
                serializer.validated_data["value"],
                note=serializer.validated_data.get("note"),
                actor=request.user,
            )
        except BrokerError as exc:
            return _error_response(exc)
        return Response(ReadinessSerializer(result).data)

    @extend_schema(request=None, responses=ReadinessSerializer)
    @action(detail=True, methods=["post"], url_path="mark-sent")
    def mark_sent(self, request, pk=None):
        job = self.get_object()
        try:
            result = mark_job_sent(job.id, actor=request.user)
        except BrokerError as exc:
            return _error_response(exc)
        return Response(ReadinessSerializer(result).data)

    @extend_schema(request=None, responses=JobSerializer)
    @action(detail=True, methods=["post"], url_path="mark-invoiced")
    def mark_invoiced(self, request, pk=None):
        job = self.get_object()
        try:
            mark_invoice_generated(job.id, actor=request.user)
        except BrokerError as exc:
            return _error_response(exc)
        return self._job_response(job.id)

    @extend_schema(request=JobComponentSerializer, responses=JobComponentSerializer(many=True))
    @action(detail=True, methods=["get", "post"], url_path="components")
    def components(self, request, pk=None):
        job = self.get_object()
        if request.method == "POST":
            serializer = JobComponentSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            try:
                component = add_component(job.id, actor=request.user, **serializer.validated_data)
            except BrokerError as exc:
                return _error_response(exc)
            return Response(JobComponentSerializer(component).data, status=status.HTTP_201_CREATED)
        return Response(JobComponentSerializer(job.components.all(), many=True).data)

    @extend_schema(request=ComponentStatusSerializer, responses=ReadinessSerializer)
    @action(
        detail=True,
        methods=["patch"],
        url_path=r"components/(?P<component_id>[0-9]+)",
    )
    def component_status(self, request, pk=None, component_id=None):
        job = self.get_object()
        if not job.components.filter(id=component_id).exists():
            return Response(
                {"detail": "Job component not found.", "code": "component_not_found"},
                status=status.HTTP_404_NOT_FOUND,
            )
        serializer = ComponentStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            result = update_component_status(
                int(component_id), actor=request.user, **serializer.validated_data
            )
        except BrokerError as exc:
            return _error_response(exc)
        return Response(ReadinessSerializer(result).data)

    @extend_schema(request=ChangeOrderWriteSerializer, responses=ChangeOrderSerializer(many=True))
    @action(detail=True, methods=["get", "post"], url_path="change-orders")
    def change_orders(self, request, pk=None):
        job = self.get_object()
        if request.method == "POST":
            serializer = ChangeOrderWriteSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            try:
                change_order = create_change_order(
                    job.id, actor=request.user, **serializer.validated_data
                )
            except BrokerError as exc:
                return _error_response(exc)
            return Response(
                ChangeOrderSerializer(change_order).data, status=status.HTTP_201_CREATED
            )
        return Response(
            ChangeOrderSerializer(job.change_orders.order_by("-version"), many=True).data
        )

    @extend_schema(request=None, responses=EffectiveJobStateSerializer)
    @action(detail=True, methods=["get"], url_path="effective-state")
    def effective_state(self, request, pk=None):
        job = self.get_object()
        try:
            state = effective_job_state(job.id)
        except BrokerError as exc:
            return _error_response(exc)
        return Response(EffectiveJobStateSerializer(state).data)


class ChangeOrderViewSet(
    OptionalPaginationListMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.UpdateModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = ChangeOrderSerializer
    filterset_fields = ["job", "status"]

    def get_queryset(self):
        return ChangeOrder.objects.filter(job__deleted_at__isnull=True).select_related("job")

    def get_serializer_class(self):
        if self.action in ["update", "partial_update"]:
            return ChangeOrderWriteSerializer
        return ChangeOrderSerializer

    def get_permissions(self):
        if self.action in ["approve", "reject"]:
            return [IsFinanceOrBrokerAdmin()]
        return [IsStaffRole()]

    @extend_schema(request=ChangeOrderWriteSerializer, responses=ChangeOrderSerializer)
    def update(self, request, *args, **kwargs):
        change_order = self.get_object()
        serializer = ChangeOrderWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        try:
            change_order = update_change_order(
                change_order.id, dict(serializer.validated_data), actor=request.user
            )
        except BrokerError as exc:
            return _error_response(exc)
        return Response(ChangeOrderSerializer(change_order).data)

    def destroy(self, request, *args, **kwargs):
        change_order = self.get_object()
        try:
            delete_change_order(change_order.id, actor=request.user)
        except BrokerError as exc:
            return _error_response(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(request=None, responses=ChangeOrderSerializer)
    @action(detail=True, methods=["post"], url_path="submit")
    def submit(self, request, pk=None):
        change_order = self.get_object()
        try:
            change_order = submit_change_order(change_order.id, actor=request.user)
        except BrokerError as exc:
            return _error_response(exc)
        return Response(ChangeOrderSerializer(change_order).data)

    @extend_schema(request=None, responses=ChangeOrderSerializer)
    @action(detail=True, methods=["post"], url_path="approve")
    def approve(self, request, pk=None):
        change_order = self.get_object()
        try:
            change_order = approve_change_order(change_order.id, actor=request.user)
        except BrokerError as exc:
            return _error_response(exc)
        return Response(ChangeOrderSerializer(change_order).data)

    @extend_schema(request=ChangeOrderRejectSerializer, responses=ChangeOrderSerializer)
    @action(detail=True, methods=["post"], url_path="reject")
    def reject(self, request, pk=None):
        change_order = self.get_object()
        serializer = ChangeOrderRejectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            change_order = reject_change_order(
                change_order.id,
                reason=serializer.validated_data["rejection_reason"],
                actor=request.user,
            )
        except BrokerError as exc:
            return _error_response(exc)
        return Response(ChangeOrderSerializer(change_order).data)


class PurchaseOrderViewSet(OptionalPaginationListMixin, viewsets.ModelViewSet):
    serializer_class = PurchaseOrderSerializer
    filterset_fields = ["job", "status", "target_vendor", "origin_company", "target_company"]

    def get_queryset(self):
        return PurchaseOrder.objects.filter(job__deleted_at__isnull=True).select_related(
            "job", "target_vendor"
        )

    def get_serializer_class(self):
        if self.action == "create":
            return PurchaseOrderCreateSerializer
        if self.action in ["update", "partial_update"]:
            return PurchaseOrderUpdateSerializer
        return PurchaseOrderSerializer

    def get_permissions(self):
        if self.action == "destroy":
            return [IsFinanceOrBrokerAdmin()]
        return [IsStaffRole()]

    @extend_schema(request=PurchaseOrderCreateSerializer, responses=PurchaseOrderSerializer)
    def create(self, request, *args, **kwargs):
        serializer = PurchaseOrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        fields = dict(serializer.validated_data)
        job = fields.pop("job")
        try:
            purchase_order = create_purchase_order(job.id, actor=request.user, **fields)
        except BrokerError as exc:
            return _error_response(exc)
        return Response(
            PurchaseOrderSerializer(purchase_order).data, status=status.HTTP_201_CREATED
        )

    @extend_schema(request=PurchaseOrderUpdateSerializer, responses=PurchaseOrderSerializer)
    def update(self, request, *args, **kwargs):
        purchase_order = self.get_object()
        serializer = PurchaseOrderUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        changes = dict(serializer.validated_data)
        allow_negative_margin = changes.pop("allow_negative_margin", False)
        try:
            purchase_order = update_purchase_order(
                purchase_order.id,
                changes,
                actor=request.user,
                allow_negative_margin=allow_negative_margin,
            )
        except BrokerError as exc:
            return _error_response(exc)
        return Response(PurchaseOrderSerializer(purchase_order).data)

    def destroy(self, request, *args, **kwargs):
        purchase_order = self.get_object()
        try:
            delete_purchase_order(purchase_order.id, actor=request.user)
        except BrokerError as exc:
            return _error_response(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(request=None, responses=FinalizeResultSerializer)
    @action(detail=True, methods=["post"], url_path="finalize")
    def finalize(self, request, pk=None):
        purchase_order = self.get_object()
        try:
            result = finalize_execution_id(purchase_order.id, actor=request.user)
        except BrokerError as exc:
            return _error_response(exc)
        return Response(
            FinalizeResultSerializer(result).data,
            status=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK,
        )


class JobAuditLogViewSet(OptionalPaginationListMixin, viewsets.ReadOnlyModelViewSet):
    serializer_class = JobAuditLogSerializer
    permission_classes = [IsFinanceOrBrokerAdmin]
    filterset_fields = ["job", "purchase_order", "action"]

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return JobAuditLog.objects.none()
        queryset = JobAuditLog.objects.select_related("actor", "job", "purchase_order").order_by(
            "-created_at", "-id"
        )
        search_value = self.request.query_params.get("q", "").strip()
        if search_value:
            queryset = queryset.filter(
                Q(action__icontains=search_value) | Q(message__icontains=search_value)
            )
        return queryset
