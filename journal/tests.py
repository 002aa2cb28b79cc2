from decimal import Decimal
from io import StringIO
from unittest import mock

from django.contrib.admin.sites import AdminSite
from django.core.management import call_command
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase

from gateway.exceptions import ApiError
from gateway.session import SessionContext

from . import drafts, services
from .admin import JournalDraftAdmin
from .amounts import format_amount, parse_amount, sanitize_blur, sanitize_keystroke, truncate_to_cents
from .assembler import build_create_request, build_update_request, shortcut_line_set
from .exceptions import JournalValidationError, ReconciledTransaction, SubmissionFailed
from .kinds import EXPENSE, MANUAL, REVENUE, get_kind
from .lines import CREDIT, DEBIT, LineSet, MinimumLinesError, TransactionHeader
from .models import JournalDraft
from .validation import Reason, calculate_balance, validate


def lines_of(*rows):
	"""rows: (account_id, debit, credit)"""
	ls = LineSet()
	for account, debit, credit in rows:
		ls.add_line(account_id=account, debit_amount=debit, credit_amount=credit)
	return ls


def header(**kwargs):
	kwargs.setdefault("date", "2025-08-23")
	kwargs.setdefault("description", "Sale")
	return TransactionHeader(**kwargs)


def company_ctx(user_id="u1", company_id="c1", role="accountant"):
	ctx = SessionContext()
	membership = {"_id": "m1", "companyId": company_id, "role": role, "company": {"_id": company_id}}
	ctx.login({"_id": user_id}, [membership], token="tok")
	ctx.select_company(membership)
	return ctx


class AmountTests(SimpleTestCase):
	def test_parse_is_lenient_and_unrounded(self):
		self.assertEqual(parse_amount("12.345"), Decimal("12.345"))
		self.assertEqual(parse_amount("12.5abc"), Decimal("12.5"))
		self.assertEqual(parse_amount(" 7"), Decimal("7"))
		self.assertEqual(parse_amount(0.1), Decimal("0.1"))
		for junk in ("", ".", "abc", None):
			self.assertEqual(parse_amount(junk), 0)

	def test_non_finite_numbers_are_zero(self):
		for value in (float("nan"), float("inf"), float("-inf"), Decimal("NaN")):
			self.assertEqual(parse_amount(value), 0)
		line = LineSet.from_entries([{"account": "cash", "debit": float("nan"), "credit": 5}]).get(0)
		self.assertEqual(line.debit_amount, "")
		self.assertTrue(line.is_postable)

	def test_keystroke_keeps_first_dot(self):
		self.assertEqual(sanitize_keystroke("1.2.3"), "1.23")
		self.assertEqual(sanitize_keystroke("a1b2,50"), "1250")
		self.assertEqual(sanitize_keystroke("12."), "12.")

	def test_blur(self):
		cases = {
			"": "",
			".": "",
			"  ": "",
			"12.345": "12.34",
			"007.5": "7.5",
			"00": "0",
			"00.5": "0.5",
			"0.50": "0.50",
			"12.": "12",
			".5": ".5",
			"1.2.3": "1.23",
		}
		for raw, expected in cases.items():
			self.assertEqual(sanitize_blur(raw), expected, raw)

	def test_blur_is_idempotent(self):
		for raw in ("12.345", "007.5", "1.2.3", ".", "0.0", "abc", "100", ".99"):
			once = sanitize_blur(raw)
			self.assertEqual(sanitize_blur(once), once, raw)

	def test_truncate_never_rounds_up(self):
		self.assertEqual(truncate_to_cents(Decimal("12.349")), Decimal("12.34"))
		self.assertEqual(truncate_to_cents(Decimal("0.009")), Decimal("0.00"))

	def test_format_for_editing(self):
		self.assertEqual(format_amount(0), "")
		self.assertEqual(format_amount(None), "")
		self.assertEqual(format_amount(125), "125")
		self.assertEqual(format_amount(12.5), "12.5")
		self.assertEqual(format_amount("100.00"), "100")


class LineSetTests(SimpleTestCase):
	def test_blank_has_two_lines(self):
		ls = LineSet.blank()
		self.assertEqual([l.id for l in ls], [0, 1])
		self.assertFalse(ls.has_data)

	def test_ids_are_never_reused(self):
		ls = LineSet.blank()
		ls.add_line()
		ls.remove_line(1)
		line = ls.add_line()
		self.assertEqual(line.id, 3)
		self.assertEqual([l.id for l in ls], [0, 2, 3])

	def test_cannot_go_below_two_lines(self):
		ls = LineSet.blank()
		with self.assertRaises(MinimumLinesError):
			ls.remove_line(0)
		self.assertEqual(len(ls), 2)

	def test_commit_clears_opposite_side(self):
		ls = LineSet.blank()
		ls.get(0).credit_amount = "40"
		self.assertEqual(ls.commit_amount(0, DEBIT, "0012.999"), "12.99")
		self.assertEqual(ls.get(0).debit_amount, "12.99")
		self.assertEqual(ls.get(0).credit_amount, "")

	def test_commit_zero_keeps_opposite_side(self):
		ls = LineSet.blank()
		ls.get(1).debit_amount = "40"
		ls.commit_amount(1, CREDIT, "0")
		self.assertEqual(ls.get(1).debit_amount, "40")
		self.assertEqual(ls.get(1).credit_amount, "0")

	def test_commit_rejects_unknown_side(self):
		with self.assertRaises(ValueError):
			LineSet.blank().commit_amount(0, "sideways", "1")

	def test_from_entries_accepts_both_account_shapes(self):
		ls = LineSet.from_entries([
			{"account": {"_id": "cash", "name": "Cash"}, "debit": 125, "credit": 0, "description": "In"},
			{"accountId": "sales", "debit": 0, "credit": 125.5},
		])
		first, second = list(ls)
		self.assertEqual((first.account_id, first.debit_amount, first.credit_amount), ("cash", "125", ""))
		self.assertEqual((second.account_id, second.debit_amount, second.credit_amount), ("sales", "", "125.5"))
		self.assertEqual(ls.next_id, 2)

	def test_dict_round_trip_keeps_next_id(self):
		ls = lines_of(("cash", "10", ""), ("sales", "", "10"))
		ls.add_line()
		ls.remove_line(2)
		again = LineSet.from_dict(ls.to_dict())
		self.assertEqual(again, ls)
		self.assertEqual(again.add_line().id, 3)


class BalanceTests(SimpleTestCase):
	def test_totals_ignore_garbage(self):
		balance = calculate_balance(lines_of(("a", "10", "."), ("b", "abc", "4.5"), ("c", "", "5.5")))
		self.assertEqual(balance.total_debit, Decimal("10"))
		self.assertEqual(balance.total_credit, Decimal("10.0"))
		self.assertTrue(balance.is_balanced)

	def test_one_cent_is_unbalanced(self):
		balance = calculate_balance(lines_of(("a", "100.00", ""), ("b", "", "99.99")))
		self.assertEqual(balance.difference, Decimal("0.01"))
		self.assertFalse(balance.is_balanced)

	def test_half_cent_is_balanced(self):
		self.assertTrue(calculate_balance(lines_of(("a", "100.00", ""), ("b", "", "99.995"))).is_balanced)


class ValidatorTests(SimpleTestCase):
	def test_valid_entry(self):
		result = validate(header(), lines_of(("cash", "25", ""), ("sales", "", "25")))
		self.assertTrue(result.ok)
		self.assertIsNone(result.reason)
		self.assertEqual(result.message, "")

	def test_description_checked_first(self):
		result = validate(header(description="   ", date=None), lines_of(("a", "1", "1")))
		self.assertEqual(result.reason, Reason.DESCRIPTION_REQUIRED)
		self.assertEqual(result.message, "Please enter a description")

	def test_date_required_unless_disabled(self):
		ls = lines_of(("cash", "25", ""), ("sales", "", "25"))
		self.assertEqual(validate(header(date=None), ls).reason, Reason.DATE_REQUIRED)
		self.assertTrue(validate(header(date=None), ls, require_date=False).ok)

	def test_insufficient_entries(self):
		# a line without an account does not count
		result = validate(header(), lines_of(("cash", "25", ""), ("", "", "25")))
		self.assertEqual(result.reason, Reason.INSUFFICIENT_ENTRIES)
		self.assertEqual(result.message, "At least 2 valid entries required")

	def test_amount_without_account_is_not_totalled(self):
		ls = lines_of(("cash", "100", ""), ("sales", "", "50"), ("", "", "50"))
		result = validate(header(), ls)
		self.assertEqual(result.reason, Reason.UNBALANCED)
		self.assertEqual(result.difference, Decimal("50"))

	def test_double_sided_before_unbalanced(self):
		result = validate(header(), lines_of(("cash", "10", "5"), ("sales", "", "99")))
		self.assertEqual(result.reason, Reason.DOUBLE_SIDED_LINE)

	def test_unbalanced_reports_difference(self):
		result = validate(header(), lines_of(("cash", "100.00", ""), ("sales", "", "99.99")))
		self.assertEqual(result.reason, Reason.UNBALANCED)
		self.assertEqual(result.difference, Decimal("0.01"))
		self.assertEqual(result.message, "Debits and credits must be equal. Difference: 0.01")
		self.assertEqual(result.as_dict()["difference"], "0.01")

	def test_credit_heavy_difference_is_shown_unsigned(self):
		result = validate(header(), lines_of(("cash", "10", ""), ("sales", "", "12.5")))
		self.assertEqual(result.difference, Decimal("-2.5"))
		self.assertTrue(result.message.endswith("Difference: 2.50"))

	def test_zero_amount(self):
		result = validate(header(), lines_of(("a", "", "0.001"), ("b", "", "0.001")))
		self.assertEqual(result.reason, Reason.ZERO_AMOUNT)

	def test_blank_lines_are_ignored(self):
		ls = lines_of(("cash", "25", ""), ("", "", ""), ("sales", "", "25"))
		self.assertTrue(validate(header(), ls).ok)


class KindTests(SimpleTestCase):
	ACCOUNTS = [
		{"_id": "cash", "accountType": "ASSET"},
		{"_id": "card", "accountType": "LIABILITY"},
		{"_id": "sales", "accountType": "REVENUE"},
		{"_id": "food", "accountType": "EXPENSE"},
	]

	def test_lookup(self):
		self.assertIs(get_kind("EXPENSE"), EXPENSE)
		with self.assertRaises(ValueError):
			get_kind("payroll")

	def test_manual_allows_everything(self):
		self.assertEqual(MANUAL.accounts_for(DEBIT, self.ACCOUNTS), self.ACCOUNTS)

	def test_expense_sides(self):
		self.assertEqual([a["_id"] for a in EXPENSE.accounts_for(DEBIT, self.ACCOUNTS)], ["food"])
		self.assertEqual([a["_id"] for a in EXPENSE.accounts_for(CREDIT, self.ACCOUNTS)], ["cash", "card"])

	def test_revenue_sides(self):
		self.assertEqual([a["_id"] for a in REVENUE.accounts_for(DEBIT, self.ACCOUNTS)], ["cash"])
		self.assertEqual([a["_id"] for a in REVENUE.accounts_for(CREDIT, self.ACCOUNTS)], ["sales"])


class AssemblerTests(SimpleTestCase):
	def test_create_request(self):
		ls = lines_of(("cash", "12.349", ""), ("", "", ""), ("sales", "", "12.349"))
		ls.get(0).description = "  Till  "
		payload = build_create_request(company_id="c1", header=header(reference="  ", notes="Paid cash"), line_set=ls)
		self.assertEqual(
			payload,
			{
				"companyId": "c1",
				"date": "2025-08-23",
				"description": "Sale",
				"notes": "Paid cash",
				"sourceType": "MANUAL",
				"entries": [
					{"accountId": "cash", "debit": 12.34, "credit": 0.0, "description": "Till"},
					{"accountId": "sales", "debit": 0.0, "credit": 12.34, "description": "Sale"},
				],
			},
		)

	def test_kind_sets_source_type(self):
		ls = lines_of(("food", "5", ""), ("cash", "", "5"))
		payload = build_create_request(company_id="c1", header=header(), line_set=ls, kind=EXPENSE)
		self.assertEqual(payload["sourceType"], "EXPENSE")

	def test_update_request_keys_by_account(self):
		payload = build_update_request(header=header(reference="R-1"), line_set=lines_of(("cash", "5", ""), ("sales", "", "5")))
		self.assertNotIn("companyId", payload)
		self.assertEqual(payload["reference"], "R-1")
		self.assertEqual(payload["entries"][0]["account"], "cash")

	def test_posted_entries_reload_with_same_amounts(self):
		ls = lines_of(("rent", "100.00", ""), ("bank", "", "100.00"))
		payload = build_create_request(company_id="c1", header=header(description="Rent"), line_set=ls)
		reloaded = LineSet.from_entries(payload["entries"])
		self.assertEqual([(l.debit, l.credit) for l in reloaded], [(l.debit, l.credit) for l in ls])
		self.assertEqual(reloaded.get(0).debit_amount, "100")

	def test_shortcut_expands_to_two_lines(self):
		ls = shortcut_line_set(amount="23.45", debit_account_id="food", credit_account_id="cash", description="Pens")
		self.assertEqual([(l.account_id, l.debit_amount, l.credit_amount) for l in ls], [("food", "23.45", ""), ("cash", "", "23.45")])
		self.assertTrue(validate(header(description="Pens"), ls).ok)


class ServiceTests(TestCase):
	def setUp(self):
		self.ctx = company_ctx()
		self.client = mock.Mock()
		self.client.create_transaction.return_value = {"_id": "t1"}

	def test_invalid_entry_is_never_sent(self):
		with self.assertRaises(JournalValidationError) as cm:
			services.submit_journal_entry(
				client=self.client, ctx=self.ctx, header=header(), line_set=lines_of(("cash", "10", ""), ("sales", "", "9"))
			)
		self.assertEqual(cm.exception.code, "UNBALANCED")
		self.client.create_transaction.assert_not_called()

	def test_submit_posts_and_clears_draft(self):
		ls = lines_of(("cash", "10", ""), ("sales", "", "10"))
		drafts.save_draft(self.ctx, header(), ls)
		created = services.submit_journal_entry(client=self.client, ctx=self.ctx, header=header(), line_set=ls)
		self.assertEqual(created, {"_id": "t1"})
		payload = self.client.create_transaction.call_args.args[0]
		self.assertEqual(payload["companyId"], "c1")
		self.assertEqual(len(payload["entries"]), 2)
		self.assertFalse(JournalDraft.objects.exists())

	def test_posted_entries_always_balance(self):
		ls = lines_of(("cash", "100", ""), ("sales", "", "50"), ("", "", "50"))
		with self.assertRaises(JournalValidationError):
			services.submit_journal_entry(client=self.client, ctx=self.ctx, header=header(), line_set=ls)
		self.client.create_transaction.assert_not_called()

		ls.get(2).account_id = "tips"
		services.submit_journal_entry(client=self.client, ctx=self.ctx, header=header(), line_set=ls)
		entries = self.client.create_transaction.call_args.args[0]["entries"]
		self.assertEqual(len(entries), 3)
		self.assertLess(abs(sum(e["debit"] for e in entries) - sum(e["credit"] for e in entries)), 0.01)

	def test_backend_failure_keeps_draft(self):
		ls = lines_of(("cash", "10", ""), ("sales", "", "10"))
		drafts.save_draft(self.ctx, header(), ls)
		self.client.create_transaction.side_effect = ApiError("Account is inactive", status=400)
		with self.assertRaises(SubmissionFailed) as cm:
			services.submit_journal_entry(client=self.client, ctx=self.ctx, header=header(), line_set=ls)
		self.assertEqual(cm.exception.message, "Account is inactive")
		self.assertEqual(cm.exception.status, 400)
		self.assertEqual(JournalDraft.objects.count(), 1)

	def test_revenue_shortcut(self):
		services.record_shortcut(
			client=self.client,
			ctx=self.ctx,
			kind=REVENUE,
			header=header(description="Consulting"),
			amount="300",
			debit_account_id="bank",
			credit_account_id="sales",
		)
		payload = self.client.create_transaction.call_args.args[0]
		self.assertEqual(payload["sourceType"], "REVENUE")
		self.assertEqual([e["description"] for e in payload["entries"]], ["Consulting", "Consulting"])

	def test_reconciled_transaction_is_locked(self):
		tx = {"_id": "t1", "reconciledAt": "2025-09-01T00:00:00Z"}
		ls = lines_of(("cash", "10", ""), ("sales", "", "10"))
		with self.assertRaises(ReconciledTransaction):
			services.update_transaction(client=self.client, ctx=self.ctx, transaction=tx, header=header(), line_set=ls)
		with self.assertRaisesMessage(ReconciledTransaction, "Cannot delete reconciled transactions"):
			services.delete_transaction(client=self.client, ctx=self.ctx, transaction=tx)
		self.client.update_transaction.assert_not_called()
		self.client.delete_transaction.assert_not_called()

	def test_update_sends_account_keyed_entries(self):
		ls = lines_of(("cash", "10", ""), ("sales", "", "10"))
		services.update_transaction(client=self.client, ctx=self.ctx, transaction={"_id": "t1"}, header=header(), line_set=ls)
		tx_id, payload, company_id = self.client.update_transaction.call_args.args
		self.assertEqual((tx_id, company_id), ("t1", "c1"))
		self.assertEqual(payload["entries"][1]["account"], "sales")

	def test_delete_failure(self):
		self.client.delete_transaction.side_effect = ApiError("HTTP 500: Internal Server Error", status=500)
		with self.assertRaises(SubmissionFailed):
			services.delete_transaction(client=self.client, ctx=self.ctx, transaction={"_id": "t1"})


class DraftTests(TestCase):
	def setUp(self):
		self.ctx = company_ctx()

	def test_empty_form_is_not_saved(self):
		self.assertFalse(drafts.save_draft(self.ctx, TransactionHeader.today(), LineSet.blank()))
		self.assertFalse(JournalDraft.objects.exists())

	def test_save_and_load(self):
		ls = lines_of(("cash", "10", ""), ("sales", "", ""))
		self.assertTrue(drafts.save_draft(self.ctx, header(notes="half done"), ls))
		loaded_header, loaded_lines = drafts.load_draft(self.ctx)
		self.assertEqual(loaded_header.notes, "half done")
		self.assertEqual(loaded_lines, ls)

	def test_one_draft_per_user_company_and_kind(self):
		drafts.save_draft(self.ctx, header(description="first"), LineSet.blank())
		drafts.save_draft(self.ctx, header(description="second"), LineSet.blank())
		drafts.save_draft(self.ctx, header(description="expense"), LineSet.blank(), kind="expense")
		self.assertEqual(JournalDraft.objects.count(), 2)
		self.assertEqual(drafts.load_draft(self.ctx)[0].description, "second")
		self.assertIsNone(drafts.load_draft(company_ctx(company_id="c2")))

	def test_needs_a_company(self):
		ctx = SessionContext()
		ctx.login({"_id": "u1"}, [])
		self.assertFalse(drafts.save_draft(ctx, header(), LineSet.blank()))
		self.assertIsNone(drafts.load_draft(ctx))

	def test_malformed_draft_is_ignored(self):
		JournalDraft.objects.create(user_id="u1", company_id="c1", header={"description": "x"}, lines=[{"bogus": 1}])
		with self.assertLogs("journal.drafts", level="WARNING"):
			self.assertIsNone(drafts.load_draft(self.ctx))

	def test_storage_failure_is_logged(self):
		with mock.patch.object(JournalDraft.objects, "update_or_create", side_effect=DatabaseError("disk full")):
			with self.assertLogs("journal.drafts", level="ERROR"):
				self.assertFalse(drafts.save_draft(self.ctx, header(), LineSet.blank()))

	def test_clear(self):
		drafts.save_draft(self.ctx, header(), LineSet.blank())
		drafts.clear_draft(self.ctx)
		self.assertFalse(JournalDraft.objects.exists())

	def test_admin_balance_badge(self):
		ls = lines_of(("cash", "10", ""), ("sales", "", "9"))
		drafts.save_draft(self.ctx, header(), ls)
		badge = JournalDraftAdmin(JournalDraft, AdminSite()).balance_badge(JournalDraft.objects.get())
		self.assertIn("Off by 1.00", badge)


class CommandTests(TestCase):
	def setUp(self):
		self.client = mock.Mock()
		self.client.login.return_value = ({"_id": "u1"}, "tok")
		self.client.get_user_memberships.return_value = [
			{"_id": "m1", "companyId": "c1", "role": "owner", "company": {"_id": "c1"}},
		]
		self.client.cookies = {}
		patcher = mock.patch("journal.management.commands.seed_coa.client_for", return_value=self.client)
		patcher.start()
		self.addCleanup(patcher.stop)

	def test_seed_coa_skips_existing_codes(self):
		self.client.get_accounts.return_value = [{"_id": "a1", "code": "1000"}]
		out = StringIO()
		call_command("seed_coa", account="jane", password="pw", stdout=out)
		codes = [c.args[0]["code"] for c in self.client.create_account.call_args_list]
		self.assertNotIn("1000", codes)
		self.assertIn("5200", codes)
		self.assertEqual(self.client.create_account.call_args_list[0].args[0]["companyId"], "c1")
		self.assertIn("11 new", out.getvalue())

	def test_post_sample_transaction(self):
		self.client.get_accounts.return_value = [{"_id": "cash", "code": "1000"}, {"_id": "sales", "code": "4000"}]
		self.client.create_transaction.return_value = {"_id": "t9"}
		out = StringIO()
		call_command("post_sample_transaction", account="jane", password="pw", amount="42.50", stdout=out)
		entries = self.client.create_transaction.call_args.args[0]["entries"]
		self.assertEqual([(e["accountId"], e["debit"], e["credit"]) for e in entries], [("cash", 42.5, 0.0), ("sales", 0.0, 42.5)])
		self.assertIn("t9", out.getvalue())
