#!/usr/bin/env python3
"""
Load the transactions described in:
  Martin Kleppmann, "Accounting for Computer Scientists" (2011-03-07)
  https://martin.kleppmann.com/2011/03/07/accounting-for-computer-scientists.html

This script signs in through the ledger-desk API, selects a company and
posts each example through POST {API}/api/transactions/, so every entry
goes through the same journal checks as the browser form.

Usage:
  python load_kleppmann_example.py --api http://localhost:8000 --account alice --password secret [--company <id>]

Prereqs:
  - ledger-desk and the accounting backend are running.
  - Accounts with the codes below exist (`python manage.py seed_coa` creates them).
"""

import argparse
import sys
from datetime import date

import requests

# ---- Adjust these if your codes differ ----
ACCOUNTS = {
    "BANK": "1100",          # Asset
    "CREDIT_CARD": "2100",   # Liability
    "DEBTORS": "1200",       # Asset (Accounts Receivable)
    "FURNITURE": "1500",     # Asset
    "CAPITAL": "3000",       # Equity
    "SALES": "4000",         # Revenue
    "PAYROLL": "5100",       # Expense
    "FOOD": "5200",          # Expense
    "DEPRECIATION": "5300",  # Expense
}

# (description, debit account, credit account, amount, line note)
EXAMPLES = [
    ("Bagel on company credit card ($5)", "FOOD", "CREDIT_CARD", "5.00", "bagel"),
    ("Aeron chair paid from bank ($500)", "FURNITURE", "BANK", "500.00", "chair"),
    ("Pay credit card bill ($5)", "CREDIT_CARD", "BANK", "5.00", "card bill"),
    ("Founder capital $5,000", "BANK", "CAPITAL", "5000.00", "founder capital"),
    ("Customer 1 sale, paid immediately ($5,000)", "BANK", "SALES", "5000.00", "sale C1"),
    ("Customer 2 sale on credit ($5,000)", "DEBTORS", "SALES", "5000.00", "sale C2"),
    ("Customer 2 partial payment ($2,500)", "BANK", "DEBTORS", "2500.00", "C2 upfront"),
    ("YC investment $20,000", "BANK", "CAPITAL", "20000.00", "YC"),
    ("Payroll $8,000", "PAYROLL", "BANK", "8000.00", "salary"),
    ("Depreciation of chair (1 year) $125", "DEPRECIATION", "FURNITURE", "125.00", "depr chair"),
]


def call(session, method, url, **kwargs):
    r = session.request(method, url, timeout=30, **kwargs)
    if r.status_code >= 400:
        try:
            detail = r.json().get("detail", r.text)
        except ValueError:
            detail = r.text
        raise RuntimeError(f"{method} {url} failed {r.status_code}: {detail}")
    return r.json() if r.content else None


def open_session(api, account, password, company=None):
    """Sign in and select a company; returns the requests.Session carrying the cookie."""
    s = requests.Session()
    me = call(s, "POST", f"{api}/api/auth/login/", json={"account": account, "password": password})
    memberships = me.get("memberships") or []
    if not memberships:
        raise RuntimeError("This user is not a member of any company.")
    membership_id = company or memberships[0]["_id"]
    call(s, "POST", f"{api}/api/companies/select/", json={"membership_id": membership_id})
    return s


def account_ids(session, api):
    """Map the codes in ACCOUNTS to backend ids; returns (ids, missing codes)."""
    accounts = call(session, "GET", f"{api}/api/accounts/")
    by_code = {a.get("code"): a["_id"] for a in accounts if isinstance(a, dict) and "_id" in a}
    ids = {name: by_code.get(code) for name, code in ACCOUNTS.items()}
    missing = [ACCOUNTS[name] for name, acc_id in ids.items() if acc_id is None]
    return ids, missing


def main():
    p = argparse.ArgumentParser()
    p.add_argument("--api", required=True, help="Base URL, e.g. http://localhost:8000")
    p.add_argument("--account", required=True, help="Username or email")
    p.add_argument("--password", required=True)
    p.add_argument("--company", help="Membership or company id (default: first membership)")
    p.add_argument("--date", default=date.today().isoformat(), help="Posting date (YYYY-MM-DD) used for all entries")
    args = p.parse_args()
    api = args.api.rstrip("/")

    session = open_session(api, args.account, args.password, args.company)

    # 1) Preflight: ensure accounts exist
    ids, missing = account_ids(session, api)
    if missing:
        print("ERROR: The following required account codes are missing in your chart of accounts:")
        print("  " + ", ".join(missing))
        print("Run `python manage.py seed_coa` (or change the mapping in this script), then re-run.")
        sys.exit(2)

    # 2) Post the article's transactions
    created = []
    for description, debit, credit, amount, note in EXAMPLES:
        created.append(call(session, "POST", f"{api}/api/transactions/", json={
            "date": args.date,
            "description": description,
            "lines": [
                {"account_id": ids[debit], "description": note, "debit_amount": amount},
                {"account_id": ids[credit], "description": note, "credit_amount": amount},
            ],
        }))

    print(f"Created {len(created)} transactions successfully.")
    for t in created:
        print(f"- Tx {t.get('_id')}: {t.get('description')}")


if __name__ == "__main__":
    main()
