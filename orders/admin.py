from django.contrib import admin

from orders.infra.models import (
    CouponRecord,
    DeliveryEventRecord,
    IdempotencyKey,
    LineItemRecord,
    OrderRecord,
    ProductRecord,
    StatusHistoryRecord,
)
from orders.infra.outbox import OutboxEvent


class ReadOnlyInline(admin.TabularInline):
    extra = 0
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False


class LineItemInline(ReadOnlyInline):
    model = LineItemRecord
    fields = ("position", "sku", "product_id", "quantity", "unit_price")
    readonly_fields = fields


class StatusHistoryInline(ReadOnlyInline):
    """Status history is append-only; admins never edit it."""
    model = StatusHistoryRecord
    fields = ("sequence", "status", "changed_at", "remarks", "actor_id")
    readonly_fields = fields


class DeliveryEventInline(ReadOnlyInline):
    model = DeliveryEventRecord
    fields = ("sequence", "code", "status", "occurred_at", "location", "updated_by")
    readonly_fields = fields


class NeedsReviewFilter(admin.SimpleListFilter):
    title = "needs review"
    parameter_name = "needs_review"

    def lookups(self, request, model_admin):
        return (("yes", "Yes"), ("no", "No"))

    def queryset(self, request, queryset):
        if self.value() == "yes":
            return queryset.exclude(review_reason="")
        if self.value() == "no":
            return queryset.filter(review_reason="")
        return queryset


@admin.register(OrderRecord)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        "id", "custom_order_id", "user_id", "order_status", "payment_status",
        "total_amount", "review_reason", "placed_at",
    )
    list_filter = ("order_status", "payment_status", "payment_method", NeedsReviewFilter, "placed_at")
    search_fields = ("id", "custom_order_id", "shipment_id", "gateway_order_id")
    inlines = (LineItemInline, StatusHistoryInline, DeliveryEventInline)

    def get_readonly_fields(self, request, obj=None):
        # Edited only through OrderService
        return [field.name for field in self.model._meta.fields]


@admin.register(ProductRecord)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "price", "is_active", "created_at")
    list_filter = ("is_active",)
    search_fields = ("name",)


@admin.register(CouponRecord)
class CouponAdmin(admin.ModelAdmin):
    list_display = ("code", "discount_type", "discount_value", "min_purchase", "expires_at", "is_active")
    list_filter = ("discount_type", "is_active")
    search_fields = ("code",)


@admin.register(IdempotencyKey)
class IdempotencyAdmin(admin.ModelAdmin):
    list_display = ("key", "user_id", "operation", "created_at")
    list_filter = ("operation", "created_at")
    search_fields = ("key", "user_id")


@admin.register(OutboxEvent)
class OutboxEventAdmin(admin.ModelAdmin):
    list_display = ("id", "aggregate_id", "event_type", "processed", "failed", "retry_count", "created_at")
    list_filter = ("event_type", "processed", "failed")
    readonly_fields = ("id", "aggregate_id", "aggregate_type", "event_type", "event_data", "created_at")
