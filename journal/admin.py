from django.contrib import admin, messages
from django.utils.html import format_html

from .lines import LineSet
from .models import JournalDraft
from .validation import calculate_balance


@admin.register(JournalDraft)
class JournalDraftAdmin(admin.ModelAdmin):
    list_display = ("id", "kind", "description", "company_id", "user_id", "line_count", "balance_badge", "updated_at")
    list_filter = ("kind",)
    search_fields = ("company_id", "user_id")
    date_hierarchy = "updated_at"
    readonly_fields = ("updated_at",)
    ordering = ("-updated_at",)

    def description(self, obj):
        return obj.header.get("description", "")
    description.short_description = "Description"

    def balance_badge(self, obj):
        try:
            balance = calculate_balance(LineSet.from_dict({"lines": obj.lines, "next_id": obj.next_id}).postable())
        except (TypeError, KeyError):
            return format_html('<span style="color:#6b7280;">{}</span>', "Malformed")
        color = "#22c55e" if balance.is_balanced else "#ef4444"
        label = "Balanced" if balance.is_balanced else f"Off by {abs(balance.difference):.2f}"
        return format_html('<span style="padding:2px 6px;border-radius:8px;background:{};color:white;">{}</span>', color, label)
    balance_badge.short_description = "Σ Debit vs Σ Credit"

    actions = ["action_discard"]

    @admin.action(description="Discard selected drafts")
    def action_discard(self, request, queryset):
        count, _ = queryset.delete()
        self.message_user(request, f"Discarded {count} draft(s).", level=messages.SUCCESS)
