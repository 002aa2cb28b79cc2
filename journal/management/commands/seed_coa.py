from django.core.management.base import BaseCommand, CommandError

from gateway.client import client_for
from gateway.exceptions import ApiError
from gateway.session import SessionContext, sign_in
from journal.kinds import AccountType

BASICS = [
    ("1000", "Cash", AccountType.ASSET, "CURRENT_ASSET"),
    ("1100", "Bank", AccountType.ASSET, "CURRENT_ASSET"),
    ("1200", "Debtors", AccountType.ASSET, "CURRENT_ASSET"),
    ("1500", "Furniture", AccountType.ASSET, "FIXED_ASSET"),
    ("2000", "Accounts Payable", AccountType.LIABILITY, "CURRENT_LIABILITY"),
    ("2100", "Credit Card", AccountType.LIABILITY, "CURRENT_LIABILITY"),
    ("3000", "Capital", AccountType.EQUITY, "EQUITY"),
    ("4000", "Sales", AccountType.REVENUE, "REVENUE"),
    ("5000", "Office Supplies", AccountType.EXPENSE, "EXPENSE"),
    ("5100", "Payroll", AccountType.EXPENSE, "EXPENSE"),
    ("5200", "Food", AccountType.EXPENSE, "EXPENSE"),
    ("5300", "Depreciation", AccountType.EXPENSE, "EXPENSE"),
]


def open_company_session(account, password, company_id=None):
    """Sign in and select a company (the first membership when none given)."""
    client = client_for()
    ctx = sign_in(client, SessionContext(), account, password)
    if not ctx.memberships:
        raise CommandError("User has no company memberships.")
    membership = ctx.find_membership(company_id) if company_id else ctx.memberships[0]
    if membership is None:
        raise CommandError(f"No membership for company {company_id}.")
    ctx.select_company(membership)
    return client, ctx


class Command(BaseCommand):
    help = "Seed a company's chart of accounts in the accounting backend"

    def add_arguments(self, parser):
        parser.add_argument("--account", required=True, help="Login (username or email)")
        parser.add_argument("--password", required=True)
        parser.add_argument("--company", help="Company id (default: first membership)")
        parser.add_argument(
            "--backend-chart",
            action="store_true",
            help="Ask the backend to seed its own default chart instead of the basics below",
        )

    def handle(self, *args, **opts):
        try:
            client, ctx = open_company_session(opts["account"], opts["password"], opts.get("company"))
            if opts["backend_chart"]:
                accounts = client.seed_chart_of_accounts(ctx.company_id)
                self.stdout.write(self.style.SUCCESS(f"Backend seeded {len(accounts)} accounts."))
                return

            existing = {a.get("code") for a in client.get_accounts(ctx.company_id)}
            created = 0
            for code, name, typ, sub_type in BASICS:
                if code in existing:
                    continue
                client.create_account(
                    {"companyId": ctx.company_id, "code": code, "name": name, "accountType": typ.value, "subType": sub_type}
                )
                created += 1
        except ApiError as e:
            raise CommandError(str(e)) from e
        self.stdout.write(self.style.SUCCESS(f"Seeded Chart of Accounts ({created} new)."))
