from django.core.management.base import BaseCommand, CommandError

from gateway.exceptions import ApiError
from journal.exceptions import JournalValidationError, SubmissionFailed
from journal.lines import LineSet, TransactionHeader
from journal.services import submit_journal_entry

from .seed_coa import open_company_session


class Command(BaseCommand):
    help = "Create a sample cash sale through the journal entry checks"

    def add_arguments(self, parser):
        parser.add_argument("--account", required=True)
        parser.add_argument("--password", required=True)
        parser.add_argument("--company")
        parser.add_argument("--amount", default="100.00")

    def handle(self, *args, **opts):
        try:
            client, ctx = open_company_session(opts["account"], opts["password"], opts.get("company"))
            by_code = {a.get("code"): a["_id"] for a in client.get_accounts(ctx.company_id)}
        except ApiError as e:
            raise CommandError(str(e)) from e

        if "1000" not in by_code or "4000" not in by_code:
            raise CommandError("Accounts 1000 (Cash) and 4000 (Sales) are required; run seed_coa first.")

        lines = LineSet()
        lines.add_line(account_id=by_code["1000"], debit_amount=opts["amount"])
        lines.add_line(account_id=by_code["4000"], credit_amount=opts["amount"])
        try:
            tx = submit_journal_entry(
                client=client, ctx=ctx, header=TransactionHeader.today(description="Test sale"), line_set=lines
            )
        except (JournalValidationError, SubmissionFailed) as e:
            raise CommandError(getattr(e, "message", str(e))) from e
        self.stdout.write(self.style.SUCCESS(f"Posted: {tx.get('_id')}"))
