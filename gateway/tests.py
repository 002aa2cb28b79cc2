import json
from unittest import mock

import jwt
import requests
from django.test import SimpleTestCase, override_settings

from . import permissions, tokens
from .client import AccountingClient, client_for
from .exceptions import ApiError
from .session import SESSION_KEY, SessionContext, sign_in


def fake_response(status_code=200, body=None, reason="OK"):
	r = requests.Response()
	r.status_code = status_code
	r.reason = reason
	r._content = json.dumps(body).encode() if body is not None else b"<html>oops</html>"
	r.headers["Content-Type"] = "application/json"
	return r


def make_client(response=None, side_effect=None, **kwargs):
	session = requests.Session()
	session.request = mock.Mock(return_value=response, side_effect=side_effect)
	return AccountingClient("http://backend.test/api/", session=session, **kwargs)


def make_jwt(payload):
	return jwt.encode(payload, "gateway-tests-signing-key-0123456789", algorithm="HS256")


class AccountingClientTests(SimpleTestCase):
	def test_is_ok_envelope_is_normalised(self):
		client = make_client(fake_response(body={"isOk": True, "data": [{"_id": "a1"}]}))
		self.assertEqual(
			client.request("GET", "/accounts/get"),
			{"success": True, "data": [{"_id": "a1"}], "error": None},
		)

	def test_is_ok_false_becomes_failure(self):
		client = make_client(fake_response(body={"isOk": False, "data": None}))
		with self.assertRaises(ApiError) as cm:
			client.get_accounts("c1")
		self.assertEqual(cm.exception.message, "Request failed")

	def test_success_envelope_returns_data(self):
		client = make_client(fake_response(body={"success": True, "data": {"_id": "t1"}}))
		self.assertEqual(client.get_transaction("t1"), {"_id": "t1"})

	def test_missing_data_uses_fallback_message(self):
		client = make_client(fake_response(body={"success": True, "data": None}))
		with self.assertRaises(ApiError) as cm:
			client.get_company("c1")
		self.assertEqual(cm.exception.message, "Failed to fetch company")

	def test_http_error_prefers_server_message(self):
		body = {"success": False, "error": {"code": "NOT_FOUND", "message": "Transaction not found"}}
		client = make_client(fake_response(404, body, reason="Not Found"))
		with self.assertRaises(ApiError) as cm:
			client.get_transaction("missing")
		self.assertEqual(cm.exception.message, "Transaction not found")
		self.assertEqual(cm.exception.status, 404)

	def test_http_error_without_json(self):
		client = make_client(fake_response(500, None, reason="Internal Server Error"))
		with self.assertRaises(ApiError) as cm:
			client.get_accounts("c1")
		self.assertEqual(str(cm.exception), "HTTP 500: Internal Server Error")

	def test_timeout(self):
		client = make_client(side_effect=requests.Timeout())
		with self.assertRaises(ApiError) as cm:
			client.get_accounts("c1")
		self.assertEqual(cm.exception.message, "Request timeout")

	def test_connection_error(self):
		client = make_client(side_effect=requests.ConnectionError("refused"))
		with self.assertRaises(ApiError) as cm:
			client.get_accounts("c1")
		self.assertTrue(cm.exception.message.startswith("Request failed"))

	def test_bearer_and_csrf_headers(self):
		client = make_client(fake_response(body={"success": True, "data": {}}), token="tok")
		client.session.cookies.set("csrfToken", "csrf-1")

		client.create_transaction({"entries": []})
		method, url = client.session.request.call_args.args
		headers = client.session.request.call_args.kwargs["headers"]
		self.assertEqual((method, url), ("POST", "http://backend.test/api/transactions/post/create"))
		self.assertEqual(headers["Authorization"], "Bearer tok")
		self.assertEqual(headers["x-csrf-token"], "csrf-1")

		client.get_transaction("t1")
		self.assertNotIn("x-csrf-token", client.session.request.call_args.kwargs["headers"])

	def test_login_takes_token_from_cookie(self):
		client = make_client(fake_response(body={"success": True, "data": {"_id": "u1", "username": "jane"}}))
		client.session.cookies.set("accessToken", "jwt-abc")
		user, token = client.login("jane", "pw")
		self.assertEqual(user["_id"], "u1")
		self.assertEqual(token, "jwt-abc")
		self.assertEqual(client.token, "jwt-abc")

	def test_login_falls_back_to_user_id(self):
		client = make_client(fake_response(body={"isOk": True, "data": {"_id": "u1"}}))
		_, token = client.login("jane", "pw")
		self.assertEqual(token, "u1")

	def test_update_and_delete_scope_by_company(self):
		client = make_client(fake_response(body={"success": True, "data": {"_id": "t1"}}))
		client.update_transaction("t1", {"description": "x"}, "c1")
		kwargs = client.session.request.call_args.kwargs
		self.assertEqual(client.session.request.call_args.args[0], "PATCH")
		self.assertEqual(kwargs["params"], {"companyId": "c1"})

		client.delete_transaction("t1", "c1")
		args = client.session.request.call_args.args
		self.assertEqual(args, ("DELETE", "http://backend.test/api/transactions/delete/t1"))

	def test_transaction_filters_drop_blanks(self):
		client = make_client(fake_response(body={"success": True, "data": {"transactions": []}}))
		client.get_transactions({"companyId": "c1", "startDate": "", "accountId": None, "page": 2})
		self.assertEqual(client.session.request.call_args.kwargs["params"], {"companyId": "c1", "page": 2})

	@override_settings(ACCOUNTING_API_URL="http://configured.test/api", ACCOUNTING_API_TIMEOUT=5)
	def test_client_for_carries_session_credentials(self):
		ctx = SessionContext()
		ctx.login({"_id": "u1"}, [], token="tok", cookies={"accessToken": "tok"})
		client = client_for(ctx)
		self.assertEqual(client.base_url, "http://configured.test/api")
		self.assertEqual(client.timeout, 5)
		self.assertEqual(client.token, "tok")
		self.assertEqual(client.cookies, {"accessToken": "tok"})


MEMBERSHIP = {
	"_id": "m1",
	"companyId": "c1",
	"role": "accountant",
	"status": "active",
	"company": {"_id": "c1", "name": "Acme"},
}


class SessionContextTests(SimpleTestCase):
	def test_empty_store_is_signed_out(self):
		ctx = SessionContext.hydrate({})
		self.assertFalse(ctx.is_authenticated)
		self.assertFalse(ctx.has_company)
		self.assertIsNone(ctx.company_id)

	def test_login_and_select_survive_hydrate(self):
		store = {}
		ctx = SessionContext(store)
		ctx.login({"_id": "u1"}, [MEMBERSHIP], token="tok")
		ctx.select_company(MEMBERSHIP)

		again = SessionContext.hydrate(store)
		self.assertEqual(again.user_id, "u1")
		self.assertEqual(again.company_id, "c1")
		self.assertEqual(again.role, "accountant")
		self.assertEqual(again.token, "tok")

	def test_corrupt_store_is_cleared(self):
		store = {SESSION_KEY: {"user": {"username": "no-id"}}}
		with self.assertLogs("gateway.session", level="WARNING"):
			ctx = SessionContext.hydrate(store)
		self.assertFalse(ctx.is_authenticated)
		self.assertNotIn(SESSION_KEY, store)

	def test_non_dict_store_is_cleared(self):
		store = {SESSION_KEY: "garbage"}
		with self.assertLogs("gateway.session", level="WARNING"):
			ctx = SessionContext.hydrate(store)
		self.assertFalse(ctx.is_authenticated)
		self.assertNotIn(SESSION_KEY, store)

	def test_login_clears_previous_company(self):
		ctx = SessionContext()
		ctx.login({"_id": "u1"}, [MEMBERSHIP])
		ctx.select_company(MEMBERSHIP)
		ctx.login({"_id": "u2"}, [])
		self.assertIsNone(ctx.selected_company)
		self.assertIsNone(ctx.role)

	def test_add_membership_selects_new_company(self):
		ctx = SessionContext()
		ctx.login({"_id": "u1"}, [])
		entry = ctx.add_membership({"_id": "c9", "name": "New"}, {"_id": "m9", "role": "owner", "status": "active"})
		self.assertEqual(entry["companyId"], "c9")
		self.assertEqual(ctx.company_id, "c9")
		self.assertEqual(ctx.role, "owner")
		self.assertEqual(len(ctx.memberships), 1)

	def test_find_membership_by_either_id(self):
		ctx = SessionContext()
		ctx.login({"_id": "u1"}, [MEMBERSHIP])
		self.assertIs(ctx.find_membership("m1"), ctx.memberships[0])
		self.assertIs(ctx.find_membership("c1"), ctx.memberships[0])
		self.assertIsNone(ctx.find_membership("nope"))

	def test_teardown_removes_everything(self):
		store = {}
		ctx = SessionContext(store)
		ctx.login({"_id": "u1"}, [MEMBERSHIP], token="tok")
		ctx.teardown()
		self.assertFalse(ctx.is_authenticated)
		self.assertEqual(ctx.memberships, [])
		self.assertEqual(store, {})

	def test_snapshot_hides_credentials(self):
		ctx = SessionContext()
		ctx.login({"_id": "u1"}, [], token="secret", cookies={"accessToken": "secret"})
		snap = ctx.snapshot()
		self.assertTrue(snap["isAuthenticated"])
		self.assertNotIn("token", snap)
		self.assertNotIn("cookies", snap)

	def test_sign_in_loads_memberships(self):
		client = mock.Mock()
		client.login.return_value = ({"_id": "u1"}, "tok")
		client.get_user_memberships.return_value = [MEMBERSHIP]
		client.cookies = {"accessToken": "tok"}
		ctx = sign_in(client, SessionContext(), "jane", "pw")
		client.get_user_memberships.assert_called_once_with("u1")
		self.assertEqual(ctx.token, "tok")
		self.assertEqual(ctx.cookies, {"accessToken": "tok"})
		self.assertEqual(len(ctx.memberships), 1)

	def test_sign_in_failure_tears_down(self):
		store = {}
		ctx = SessionContext(store)
		ctx.login({"_id": "old"}, [])
		client = mock.Mock()
		client.login.return_value = ({"_id": "u1"}, "tok")
		client.get_user_memberships.side_effect = ApiError("Failed to fetch user memberships")
		with self.assertRaises(ApiError):
			sign_in(client, ctx, "jane", "pw")
		self.assertFalse(ctx.is_authenticated)
		self.assertNotIn(SESSION_KEY, store)


class PermissionTests(SimpleTestCase):
	def test_role_matrix(self):
		self.assertTrue(permissions.can_manage_accounts("owner"))
		self.assertTrue(permissions.can_manage_accounts("admin"))
		self.assertFalse(permissions.can_manage_accounts("accountant"))
		self.assertTrue(permissions.can_manage_transactions("accountant"))
		self.assertFalse(permissions.can_manage_transactions("viewer"))
		self.assertTrue(permissions.can_view_accounts("viewer"))
		self.assertTrue(permissions.can_manage_company("owner"))
		self.assertFalse(permissions.can_manage_company("admin"))

	def test_no_role_has_no_access(self):
		actions = permissions.available_actions(None)
		self.assertFalse(any(actions.values()))
		self.assertEqual(permissions.describe_role(None), "No access")

	def test_viewer_actions(self):
		actions = permissions.available_actions("viewer")
		self.assertTrue(actions["canViewReports"])
		self.assertFalse(actions["canDeleteAccounts"])
		self.assertFalse(actions["canManageTransactions"])


class TokenTests(SimpleTestCase):
	def test_fresh_token_is_not_expired(self):
		token = make_jwt({"sub": "u1", "exp": 1_000_000})
		self.assertFalse(tokens.is_expired(token, now=1_000_000 - 120))
		self.assertEqual(tokens.seconds_until_expiry(token, now=1_000_000 - 120), 120)

	def test_clock_skew_counts_as_expired(self):
		token = make_jwt({"exp": 1_000_000})
		self.assertTrue(tokens.is_expired(token, now=1_000_000 - 10))

	def test_token_without_exp_is_expired(self):
		self.assertTrue(tokens.is_expired(make_jwt({"sub": "u1"})))

	def test_not_a_jwt(self):
		self.assertIsNone(tokens.decode_payload("u1"))
		self.assertTrue(tokens.is_expired("u1"))
		self.assertEqual(tokens.seconds_until_expiry("u1"), 0)

	def test_garbage_payload_is_logged(self):
		with self.assertLogs("gateway.tokens", level="WARNING"):
			self.assertIsNone(tokens.decode_payload("a.!!!!.c"))

	def test_signature_is_not_checked(self):
		token = jwt.encode({"sub": "u1", "exp": 1_000_000}, "key-the-backend-keeps-to-itself-01234", algorithm="HS256")
		self.assertEqual(tokens.decode_payload(token), {"sub": "u1", "exp": 1_000_000})
		self.assertTrue(tokens.is_expired(token, now=1_000_000))
