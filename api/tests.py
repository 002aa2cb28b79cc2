import time
from unittest import mock

import jwt
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from gateway.exceptions import ApiError
from gateway.session import SESSION_KEY, SessionContext
from journal.models import JournalDraft

MEMBERSHIPS = [
	{"_id": "m1", "companyId": "c1", "role": "accountant", "status": "active", "company": {"_id": "c1", "name": "Acme"}},
	{"_id": "m2", "companyId": "c2", "role": "viewer", "status": "active", "company": {"_id": "c2", "name": "Other"}},
]

SALE = {
	"date": "2025-08-23",
	"description": "Cash sale",
	"lines": [
		{"account_id": "cash", "debit_amount": "25.00"},
		{"account_id": "sales", "credit_amount": "25.00"},
	],
}


def jwt_expiring_at(exp):
	return jwt.encode({"sub": "u1", "exp": exp}, "api-tests-signing-key-0123456789ab", algorithm="HS256")


class APITestCase(TestCase):
	"""Backend calls are replaced by a mock client."""

	def setUp(self):
		self.client = APIClient()
		self.backend = mock.Mock()
		self.backend.cookies = {"accessToken": "tok"}
		for target in ("api.views.client_for", "api.report_views.client_for"):
			patcher = mock.patch(target, return_value=self.backend)
			patcher.start()
			self.addCleanup(patcher.stop)

	def sign_in(self, membership=0, token="tok"):
		ctx = SessionContext()
		ctx.login({"_id": "u1", "username": "jane"}, MEMBERSHIPS, token=token)
		if membership is not None:
			ctx.select_company(MEMBERSHIPS[membership])
		session = self.client.session
		session[SESSION_KEY] = ctx.to_dict()
		session.save()

	def stored_session(self):
		return self.client.session.get(SESSION_KEY)


class SessionAPITests(APITestCase):
	def test_session_requires_sign_in(self):
		r = self.client.get(reverse("auth-session"))
		self.assertEqual(r.status_code, status.HTTP_401_UNAUTHORIZED)
		self.assertEqual(r.data["code"], "not_authenticated")

	def test_login(self):
		self.backend.login.return_value = ({"_id": "u1", "username": "jane"}, "tok")
		self.backend.get_user_memberships.return_value = MEMBERSHIPS
		r = self.client.post(reverse("auth-login"), {"account": "jane", "password": "pw"}, format="json")
		self.assertEqual(r.status_code, status.HTTP_200_OK)
		self.assertTrue(r.data["isAuthenticated"])
		self.assertTrue(r.data["needsCompanySelection"])
		self.assertNotIn("token", r.data)
		self.assertEqual(self.stored_session()["token"], "tok")

		r = self.client.get(reverse("auth-session"))
		self.assertEqual(r.status_code, status.HTTP_200_OK)
		self.assertEqual(r.data["user"]["_id"], "u1")

	def test_login_refused(self):
		self.backend.login.side_effect = ApiError("Invalid credentials", status=401)
		r = self.client.post(reverse("auth-login"), {"account": "jane", "password": "bad"}, format="json")
		self.assertEqual(r.status_code, status.HTTP_401_UNAUTHORIZED)
		self.assertEqual(r.data, {"detail": "Invalid credentials", "code": "LOGIN_FAILED"})
		self.assertIsNone(self.stored_session())

	def test_select_company(self):
		self.sign_in(membership=None)
		r = self.client.post(reverse("companies-select"), {"membership_id": "m1"}, format="json")
		self.assertEqual(r.status_code, status.HTTP_200_OK)
		self.assertEqual(r.data["role"], "accountant")
		self.assertTrue(r.data["permissions"]["canManageTransactions"])
		self.assertFalse(r.data["permissions"]["canManageAccounts"])

	def test_select_unknown_company(self):
		self.sign_in(membership=None)
		r = self.client.post(reverse("companies-select"), {"membership_id": "nope"}, format="json")
		self.assertEqual(r.status_code, status.HTTP_404_NOT_FOUND)

	def test_create_company_switches_to_it(self):
		self.sign_in(membership=None)
		self.backend.create_company.return_value = {
			"company": {"_id": "c9", "name": "New Co"},
			"membership": {"_id": "m9", "role": "owner", "status": "active"},
		}
		r = self.client.post(reverse("companies-list"), {"name": "New Co", "currency": "EUR"}, format="json")
		self.assertEqual(r.status_code, status.HTTP_201_CREATED)
		self.assertEqual(r.data["session"]["selectedCompany"]["_id"], "c9")
		self.assertEqual(self.stored_session()["role"], "owner")

	def test_expired_token_ends_session(self):
		self.sign_in(token=jwt_expiring_at(int(time.time()) - 60))
		r = self.client.get(reverse("auth-session"))
		self.assertEqual(r.status_code, status.HTTP_401_UNAUTHORIZED)
		self.assertIsNone(self.stored_session())

	def test_session_reports_expiry(self):
		self.sign_in(token=jwt_expiring_at(int(time.time()) + 3600))
		r = self.client.get(reverse("auth-session"))
		self.assertGreater(r.data["expiresIn"], 3000)

	def test_logout_clears_even_if_backend_fails(self):
		self.sign_in()
		self.backend.logout.side_effect = ApiError("Request timeout")
		r = self.client.post(reverse("auth-logout"))
		self.assertEqual(r.status_code, status.HTTP_204_NO_CONTENT)
		self.assertIsNone(self.stored_session())


class TransactionAPITests(APITestCase):
	def setUp(self):
		super().setUp()
		self.sign_in()
		self.backend.create_transaction.return_value = {"_id": "t1"}

	def test_company_required(self):
		self.sign_in(membership=None)
		r = self.client.post(reverse("transactions-list"), SALE, format="json")
		self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)

	def test_create(self):
		r = self.client.post(reverse("transactions-list"), SALE, format="json")
		self.assertEqual(r.status_code, status.HTTP_201_CREATED)
		payload = self.backend.create_transaction.call_args.args[0]
		self.assertEqual(payload["companyId"], "c1")
		self.assertEqual(payload["sourceType"], "MANUAL")
		self.assertEqual(payload["entries"][0], {"accountId": "cash", "debit": 25.0, "credit": 0.0, "description": "Cash sale"})

	def test_amounts_are_cleaned_before_checks(self):
		body = dict(SALE, lines=[
			{"account_id": "cash", "debit_amount": "0025.009"},
			{"account_id": "sales", "credit_amount": 25},
		])
		r = self.client.post(reverse("transactions-list"), body, format="json")
		self.assertEqual(r.status_code, status.HTTP_201_CREATED)
		debit = self.backend.create_transaction.call_args.args[0]["entries"][0]["debit"]
		self.assertEqual(debit, 25.0)

	def test_unbalanced_is_rejected_locally(self):
		body = dict(SALE, lines=[
			{"account_id": "cash", "debit_amount": "100.00"},
			{"account_id": "sales", "credit_amount": "99.99"},
		])
		r = self.client.post(reverse("transactions-list"), body, format="json")
		self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
		self.assertEqual(r.data["code"], "UNBALANCED")
		self.assertEqual(r.data["difference"], "0.01")
		self.backend.create_transaction.assert_not_called()

	def test_line_without_account_cannot_tip_the_balance(self):
		body = dict(SALE, lines=[
			{"account_id": "cash", "debit_amount": "100"},
			{"account_id": "sales", "credit_amount": "50"},
			{"account_id": "", "credit_amount": "50"},
		])
		r = self.client.post(reverse("transactions-list"), body, format="json")
		self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
		self.assertEqual(r.data["code"], "UNBALANCED")
		self.assertEqual(r.data["difference"], "50")
		self.backend.create_transaction.assert_not_called()

	def test_edit_form(self):
		self.backend.get_transaction.return_value = {
			"_id": "t1",
			"date": "2025-08-23T00:00:00.000Z",
			"description": "Rent",
			"reference": "R-7",
			"reconciledAt": "2025-09-01T00:00:00Z",
			"entries": [
				{"account": {"_id": "rent", "name": "Rent"}, "debit": 1200, "credit": 0},
				{"account": "bank", "debit": 0, "credit": 1200.5, "description": "Standing order"},
			],
		}
		r = self.client.get(reverse("transactions-form", args=["t1"]))
		self.assertEqual(r.status_code, status.HTTP_200_OK)
		self.assertEqual(r.data["header"], {"date": "2025-08-23", "description": "Rent", "reference": "R-7", "notes": ""})
		self.assertEqual(
			[(l["account_id"], l["debit_amount"], l["credit_amount"]) for l in r.data["lines"]],
			[("rent", "1200", ""), ("bank", "", "1200.5")],
		)
		self.assertEqual(r.data["lines"][1]["description"], "Standing order")
		self.assertEqual(r.data["next_id"], 2)
		self.assertTrue(r.data["reconciled"])

	def test_missing_description(self):
		r = self.client.post(reverse("transactions-list"), dict(SALE, description=" "), format="json")
		self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
		self.assertEqual(r.data, {"detail": "Please enter a description", "code": "DESCRIPTION_REQUIRED"})

	def test_viewer_cannot_post(self):
		self.sign_in(membership=1)
		r = self.client.post(reverse("transactions-list"), SALE, format="json")
		self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)
		self.backend.create_transaction.assert_not_called()

	def test_backend_failure(self):
		self.backend.create_transaction.side_effect = ApiError("Account not found", status=404)
		r = self.client.post(reverse("transactions-list"), SALE, format="json")
		self.assertEqual(r.status_code, status.HTTP_502_BAD_GATEWAY)
		self.assertEqual(r.data, {"detail": "Account not found", "code": "SUBMISSION_FAILED"})

	def test_expense_shortcut(self):
		body = {"date": "2025-08-23", "description": "Pens", "amount": "23.45", "debit_account_id": "office", "credit_account_id": "cash"}
		r = self.client.post(reverse("transactions-expense"), body, format="json")
		self.assertEqual(r.status_code, status.HTTP_201_CREATED)
		payload = self.backend.create_transaction.call_args.args[0]
		self.assertEqual(payload["sourceType"], "EXPENSE")
		self.assertEqual([e["accountId"] for e in payload["entries"]], ["office", "cash"])

	def test_revenue_shortcut_needs_amount(self):
		body = {"date": "2025-08-23", "description": "Fee", "debit_account_id": "bank", "credit_account_id": "sales"}
		r = self.client.post(reverse("transactions-revenue"), body, format="json")
		self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
		self.assertIn("amount", r.data["errors"])

	def test_edit_reconciled(self):
		self.backend.get_transaction.return_value = {"_id": "t1", "reconciledAt": "2025-09-01T00:00:00Z"}
		r = self.client.patch(reverse("transactions-detail", args=["t1"]), SALE, format="json")
		self.assertEqual(r.status_code, status.HTTP_409_CONFLICT)
		self.assertEqual(r.data["code"], "RECONCILED")
		self.backend.update_transaction.assert_not_called()

	def test_edit(self):
		self.backend.get_transaction.return_value = {"_id": "t1"}
		self.backend.update_transaction.return_value = {"_id": "t1", "description": "Cash sale"}
		r = self.client.patch(reverse("transactions-detail", args=["t1"]), SALE, format="json")
		self.assertEqual(r.status_code, status.HTTP_200_OK)
		tx_id, payload, company_id = self.backend.update_transaction.call_args.args
		self.assertEqual((tx_id, company_id), ("t1", "c1"))
		self.assertEqual(payload["entries"][0]["account"], "cash")

	def test_delete(self):
		self.backend.get_transaction.return_value = {"_id": "t1"}
		self.backend.delete_transaction.return_value = {"deleted": True}
		r = self.client.delete(reverse("transactions-detail", args=["t1"]))
		self.assertEqual(r.status_code, status.HTTP_200_OK)
		self.backend.delete_transaction.assert_called_once_with("t1", "c1")

	def test_missing_transaction(self):
		self.backend.get_transaction.side_effect = ApiError("Transaction not found", status=404)
		r = self.client.get(reverse("transactions-detail", args=["nope"]))
		self.assertEqual(r.status_code, status.HTTP_404_NOT_FOUND)
		self.assertEqual(r.data["code"], "BACKEND_ERROR")

	def test_list_passes_filters(self):
		self.backend.get_transactions.return_value = {"transactions": [], "total": 0}
		r = self.client.get(reverse("transactions-list"), {"startDate": "2025-08-01", "page": 2})
		self.assertEqual(r.status_code, status.HTTP_200_OK)
		self.backend.get_transactions.assert_called_once_with({"companyId": "c1", "startDate": "2025-08-01", "page": 2})


class AccountAPITests(APITestCase):
	ACCOUNTS = [
		{"_id": "cash", "code": "1000", "accountType": "ASSET"},
		{"_id": "sales", "code": "4000", "accountType": "REVENUE"},
		{"_id": "food", "code": "5200", "accountType": "EXPENSE"},
	]

	def setUp(self):
		super().setUp()
		self.sign_in()
		self.backend.get_accounts.return_value = self.ACCOUNTS

	def test_list_all(self):
		r = self.client.get(reverse("accounts-list"))
		self.assertEqual(len(r.data), 3)
		self.backend.get_accounts.assert_called_once_with("c1")

	def test_list_for_expense_debit_side(self):
		r = self.client.get(reverse("accounts-list"), {"kind": "expense", "side": "debit"})
		self.assertEqual([a["_id"] for a in r.data], ["food"])

	def test_unknown_kind(self):
		r = self.client.get(reverse("accounts-list"), {"kind": "payroll", "side": "debit"})
		self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)

	def test_accountant_cannot_create(self):
		r = self.client.post(reverse("accounts-list"), {"code": "1300", "name": "Petty", "accountType": "ASSET"}, format="json")
		self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)
		self.backend.create_account.assert_not_called()


class JournalAPITests(APITestCase):
	def setUp(self):
		super().setUp()
		self.sign_in()

	def test_preview_does_not_submit(self):
		body = dict(SALE, lines=[
			{"account_id": "cash", "debit_amount": "100.00"},
			{"account_id": "sales", "credit_amount": "99.99"},
		])
		r = self.client.post(reverse("journal-preview"), body, format="json")
		self.assertEqual(r.status_code, status.HTTP_200_OK)
		self.assertEqual(r.data["balance"]["difference"], "0.01")
		self.assertFalse(r.data["balance"]["isBalanced"])
		self.assertEqual(r.data["validation"]["reason"], "UNBALANCED")
		self.assertEqual(len(r.data["entries"]), 2)
		self.backend.create_transaction.assert_not_called()

	def test_preview_totals_only_postable_lines(self):
		body = dict(SALE, lines=[
			{"account_id": "cash", "debit_amount": "100"},
			{"account_id": "sales", "credit_amount": "50"},
			{"account_id": "", "credit_amount": "50"},
		])
		r = self.client.post(reverse("journal-preview"), body, format="json")
		self.assertEqual(r.data["balance"]["totalCredit"], "50")
		self.assertFalse(r.data["balance"]["isBalanced"])
		self.assertEqual(r.data["validation"]["reason"], "UNBALANCED")
		self.assertEqual(sum(e["credit"] for e in r.data["entries"]), 50.0)

	def test_commit_line_amount_on_draft(self):
		self.client.put(reverse("journal-draft"), {
			"description": "Rent",
			"lines": [{"account_id": "rent", "credit_amount": "40"}, {"account_id": "bank"}],
		}, format="json")
		url = reverse("journal-draft-lines")
		r = self.client.post(url, {"op": "commit", "line_id": 0, "side": "debit", "value": "0012.999"}, format="json")
		self.assertEqual(r.status_code, status.HTTP_200_OK)
		self.assertEqual((r.data["lines"][0]["debit_amount"], r.data["lines"][0]["credit_amount"]), ("12.99", ""))
		self.assertEqual(JournalDraft.objects.get().lines[0]["debit_amount"], "12.99")

	def test_add_and_remove_lines_on_draft(self):
		self.client.put(reverse("journal-draft"), {
			"description": "Split",
			"lines": [{"account_id": "cash"}, {"account_id": "bank"}],
		}, format="json")
		url = reverse("journal-draft-lines")
		r = self.client.post(url, {"op": "add"}, format="json")
		self.assertEqual([l["id"] for l in r.data["lines"]], [0, 1, 2])
		r = self.client.post(url, {"op": "remove", "line_id": 1}, format="json")
		self.assertEqual([l["id"] for l in r.data["lines"]], [0, 2])

		r = self.client.post(url, {"op": "remove", "line_id": 0}, format="json")
		self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
		self.assertEqual(r.data["code"], "MINIMUM_LINES")
		self.assertEqual(len(JournalDraft.objects.get().lines), 2)

	def test_line_edit_needs_a_known_line(self):
		url = reverse("journal-draft-lines")
		r = self.client.post(url, {"op": "commit", "line_id": 9, "side": "credit", "value": "5"}, format="json")
		self.assertEqual(r.status_code, status.HTTP_404_NOT_FOUND)
		self.assertEqual(r.data["code"], "UNKNOWN_LINE")
		r = self.client.post(url, {"op": "commit", "line_id": 0}, format="json")
		self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
		self.assertIn("side", r.data["errors"])

	def test_draft_lifecycle(self):
		url = reverse("journal-draft")
		r = self.client.get(url)
		self.assertEqual(r.status_code, status.HTTP_404_NOT_FOUND)
		self.assertEqual(len(r.data["blank"]["lines"]), 2)

		r = self.client.put(url, {"description": "Half done", "lines": [{"account_id": "cash", "debit_amount": "5"}]}, format="json")
		self.assertEqual(r.data, {"saved": True})
		self.assertEqual(JournalDraft.objects.get().user_id, "u1")

		r = self.client.get(url)
		self.assertEqual(r.status_code, status.HTTP_200_OK)
		self.assertEqual(r.data["header"]["description"], "Half done")
		self.assertEqual(r.data["lines"][0]["debit_amount"], "5")

		r = self.client.delete(url)
		self.assertEqual(r.status_code, status.HTTP_204_NO_CONTENT)
		self.assertFalse(JournalDraft.objects.exists())

	def test_drafts_are_per_kind(self):
		url = reverse("journal-draft")
		self.client.put(url, {"kind": "expense", "description": "Taxi"}, format="json")
		self.assertEqual(self.client.get(url).status_code, status.HTTP_404_NOT_FOUND)
		self.assertEqual(self.client.get(url, {"kind": "expense"}).status_code, status.HTTP_200_OK)


class ReportTests(APITestCase):
	def setUp(self):
		super().setUp()
		self.sign_in(membership=1)

	def test_trial_balance_scoped_to_company(self):
		self.backend.get_trial_balance.return_value = {"accounts": [], "totals": {"debit": 0, "credit": 0}}
		r = self.client.get(reverse("report-trial-balance"), {"asOfDate": "2025-08-31"})
		self.assertEqual(r.status_code, status.HTTP_200_OK)
		self.backend.get_trial_balance.assert_called_once_with({"companyId": "c2", "asOfDate": "2025-08-31"})

	def test_trial_balance_rejects_mixed_params(self):
		r = self.client.get(reverse("report-trial-balance"), {"asOfDate": "2025-08-31", "startDate": "2025-08-01"})
		self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
		self.backend.get_trial_balance.assert_not_called()

	def test_income_statement_requires_period(self):
		r = self.client.get(reverse("report-income-statement"), {"startDate": "2025-08-01"})
		self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)

	def test_backend_down(self):
		self.backend.get_balance_sheet.side_effect = ApiError("Request timeout")
		r = self.client.get(reverse("report-balance-sheet"))
		self.assertEqual(r.status_code, status.HTTP_502_BAD_GATEWAY)
		self.assertEqual(r.data["detail"], "Request timeout")
