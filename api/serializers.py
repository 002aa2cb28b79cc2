from rest_framework import serializers

from journal.amounts import sanitize_blur
from journal.kinds import KINDS, AccountType
from journal.lines import CREDIT, DEBIT, LineSet, TransactionHeader


class LoginIn(serializers.Serializer):
    account = serializers.CharField(help_text="Username or email")
    password = serializers.CharField(style={"input_type": "password"})


class PasswordResetIn(serializers.Serializer):
    email = serializers.EmailField()


class PasswordResetConfirmIn(serializers.Serializer):
    token = serializers.CharField()
    password = serializers.CharField(min_length=8)


class SelectCompanyIn(serializers.Serializer):
    membership_id = serializers.CharField(help_text="Membership id or company id")


class CompanyIn(serializers.Serializer):
    name = serializers.CharField()
    description = serializers.CharField(required=False, allow_blank=True)
    currency = serializers.CharField(required=False, max_length=3)
    fiscalYearStart = serializers.DateField(required=False)


class AccountIn(serializers.Serializer):
    code = serializers.CharField(max_length=20)
    name = serializers.CharField()
    accountType = serializers.ChoiceField(choices=[t.value for t in AccountType])
    subType = serializers.CharField(required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)
    parentAccount = serializers.CharField(required=False, allow_null=True)


class AmountField(serializers.CharField):
    """Amount typed as text; cleaned like the entry form does on blur."""

    def __init__(self, **kwargs):
        kwargs.setdefault("required", False)
        kwargs.setdefault("allow_blank", True)
        kwargs.setdefault("default", "")
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        return sanitize_blur(super().to_internal_value(data))


class LineIn(serializers.Serializer):
    account_id = serializers.CharField(required=False, allow_blank=True, default="")
    description = serializers.CharField(required=False, allow_blank=True, default="")
    debit_amount = AmountField()
    credit_amount = AmountField()


class HeaderIn(serializers.Serializer):
    # Missing date and description are reported by the journal checks, not here.
    date = serializers.DateField(required=False, allow_null=True, default=None)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    reference = serializers.CharField(required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")

    def to_header(self) -> TransactionHeader:
        data = self.validated_data
        return TransactionHeader(
            date=data["date"].isoformat() if data.get("date") else None,
            description=data["description"],
            reference=data["reference"],
            notes=data["notes"],
        )


class JournalEntryIn(HeaderIn):
    lines = LineIn(many=True)

    def to_line_set(self) -> LineSet:
        line_set = LineSet()
        for line in self.validated_data["lines"]:
            line_set.add_line(**line)
        return line_set


class DraftIn(JournalEntryIn):
    lines = LineIn(many=True, required=False, default=list)
    kind = serializers.ChoiceField(choices=sorted(KINDS), default="manual")


class ShortcutIn(HeaderIn):
    amount = AmountField(required=True, allow_blank=False, default=serializers.empty)
    debit_account_id = serializers.CharField()
    credit_account_id = serializers.CharField()


class KindIn(serializers.Serializer):
    kind = serializers.ChoiceField(choices=sorted(KINDS), default="manual")


class AccountFilterIn(KindIn):
    side = serializers.ChoiceField(choices=[DEBIT, CREDIT], required=False)


class LineEditIn(KindIn):
    op = serializers.ChoiceField(choices=["add", "remove", "commit"])
    line_id = serializers.IntegerField(required=False, min_value=0)
    side = serializers.ChoiceField(choices=[DEBIT, CREDIT], required=False)
    value = serializers.CharField(required=False, allow_blank=True, default="")

    def validate(self, attrs):
        if attrs["op"] != "add" and "line_id" not in attrs:
            raise serializers.ValidationError({"line_id": "Required for remove and commit."})
        if attrs["op"] == "commit" and "side" not in attrs:
            raise serializers.ValidationError({"side": "Required for commit."})
        return attrs


class TransactionFilterIn(serializers.Serializer):
    startDate = serializers.DateField(required=False)
    endDate = serializers.DateField(required=False)
    accountId = serializers.CharField(required=False)
    status = serializers.CharField(required=False)
    sourceType = serializers.CharField(required=False)
    page = serializers.IntegerField(required=False, min_value=1)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=200)


class ReportFilterIn(serializers.Serializer):
    startDate = serializers.DateField(required=False)
    endDate = serializers.DateField(required=False)
    asOfDate = serializers.DateField(required=False)
    accountId = serializers.CharField(required=False)


class BalanceOut(serializers.Serializer):
    totalDebit = serializers.CharField()
    totalCredit = serializers.CharField()
    difference = serializers.CharField()
    isBalanced = serializers.BooleanField()


class ValidationOut(serializers.Serializer):
    ok = serializers.BooleanField()
    reason = serializers.CharField(allow_null=True)
    message = serializers.CharField(allow_blank=True)
    difference = serializers.CharField(required=False)


class PreviewOut(serializers.Serializer):
    balance = BalanceOut()
    validation = ValidationOut()
    lines = LineIn(many=True)
    entries = serializers.ListField(child=serializers.DictField())


class ErrorOut(serializers.Serializer):
    detail = serializers.CharField()
    code = serializers.CharField()
