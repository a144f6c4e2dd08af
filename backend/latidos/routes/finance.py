# Overview: Flask API routes for ledger accounts, manual entries, transfers, liquidity and audits.

# backend/latidos/routes/finance.py
"""
Finance API Routes

ACCOUNTS (admin for writes):
- GET    /api/finance/accounts
- POST   /api/finance/accounts
- GET    /api/finance/accounts/<id>?start_date&end_date
- PATCH  /api/finance/accounts/<id>
- POST   /api/finance/accounts/<id>/archive
- POST   /api/finance/accounts/<id>/unarchive
- DELETE /api/finance/accounts/<id>

MONEY MOVEMENT:
- POST /api/finance/transactions      manual INCOME / EXPENSE
- POST /api/finance/transfers         one source, one destination
- POST /api/finance/transfers/split   N sources, M destinations

VIEWS:
- GET  /api/finance/liquidity
- GET  /api/finance/audit
- POST /api/finance/verification      reconciliation check mark
"""

from flask import Blueprint, request, jsonify, g

from ..services import account_service, audit_service, statement_service, transfer_service
from ..services.errors import FinanceError, ValidationError
from ..decorators import require_auth, require_admin
from ..responses import error_response, internal_error, request_signature
from ..validation import (
    parse_bool,
    parse_cents,
    parse_date_range,
    parse_datetime_field,
    parse_int,
    parse_str,
    require_json_object,
)


finance_bp = Blueprint("finance", __name__, url_prefix="/api/finance")


# =============================================================================
# ACCOUNTS
# =============================================================================

@finance_bp.get("/accounts")
@require_auth
def list_accounts_route():
    """Query params: include_archived (default false)."""
    try:
        include_archived = parse_bool(request.args.get("include_archived"), "include_archived")
        accounts = account_service.list_accounts(g.org_id, include_archived=include_archived)
        return jsonify({"success": True, "accounts": [a.to_dict() for a in accounts]})
    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("list accounts")


@finance_bp.post("/accounts")
@require_auth
@require_admin
def create_account_route():
    """
    Request body:
    {
        "name": "Caja Oficina",
        "type": "CASH",
        "is_default": false
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        account = account_service.create_account(
            g.org_id,
            data.get("name"),
            data.get("type"),
            is_default=parse_bool(data.get("is_default"), "is_default"),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"success": True, "account": account.to_dict()}), 201
    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("create account")


@finance_bp.get("/accounts/<int:account_id>")
@require_auth
def account_details_route(account_id: int):
    try:
        start, end = parse_date_range(request.args)
        details = account_service.get_account_details(g.org_id, account_id, start, end)
        return jsonify({"success": True, **details})
    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("load account details")


@finance_bp.patch("/accounts/<int:account_id>")
@require_auth
@require_admin
def update_account_route(account_id: int):
    try:
        data = require_json_object(request.get_json(silent=True))
        is_default = data.get("is_default")
        account = account_service.update_account(
            g.org_id,
            account_id,
            name=data.get("name"),
            account_type=data.get("type"),
            is_default=parse_bool(is_default, "is_default") if is_default is not None else None,
            actor_user_id=g.current_user.id,
        )
        return jsonify({"success": True, "account": account.to_dict()})
    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("update account")


@finance_bp.post("/accounts/<int:account_id>/archive")
@require_auth
@require_admin
def archive_account_route(account_id: int):
    try:
        account = account_service.archive_account(g.org_id, account_id, actor_user_id=g.current_user.id)
        return jsonify({"success": True, "account": account.to_dict()})
    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("archive account")


@finance_bp.post("/accounts/<int:account_id>/unarchive")
@require_auth
@require_admin
def unarchive_account_route(account_id: int):
    try:
        account = account_service.unarchive_account(g.org_id, account_id, actor_user_id=g.current_user.id)
        return jsonify({"success": True, "account": account.to_dict()})
    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("unarchive account")


@finance_bp.delete("/accounts/<int:account_id>")
@require_auth
@require_admin
def delete_account_route(account_id: int):
    try:
        account_service.delete_account(g.org_id, account_id, actor_user_id=g.current_user.id)
        return jsonify({"success": True, "deleted_account_id": account_id})
    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("delete account")


# =============================================================================
# MONEY MOVEMENT
# =============================================================================

@finance_bp.post("/transactions")
@require_auth
def create_transaction_route():
    """
    Manual ledger entry.

    Request body:
    {
        "account_id": 2,
        "amount_cents": 150000,
        "type": "EXPENSE",
        "category": "Rent",
        "description": "March rent",
        "date": "2026-03-01T10:00:00Z",  (optional)
        "pin": "1234"
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        account_id = parse_int(data.get("account_id"), "account_id", required=True)
        amount_cents = parse_cents(data.get("amount_cents"))
        date = parse_datetime_field(data.get("date"), "date")

        signature = request_signature(data)

        txn = account_service.create_transaction(
            g.org_id,
            account_id,
            amount_cents,
            (parse_str(data.get("type"), "type") or "").upper(),
            data.get("category"),
            data.get("description"),
            date,
            user_id=g.current_user.id,
            signature=signature,
        )
        return jsonify({"success": True, "transaction": txn.to_dict()}), 201
    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("create transaction")


@finance_bp.post("/transfers")
@require_auth
def transfer_route():
    """
    Request body:
    {
        "from_account_id": 1,
        "to_account_id": 2,
        "amount_cents": 100000,
        "description": "Cash deposit",
        "pin": "1234"
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        from_account_id = parse_int(data.get("from_account_id"), "from_account_id", required=True)
        to_account_id = parse_int(data.get("to_account_id"), "to_account_id", required=True)
        amount_cents = parse_cents(data.get("amount_cents"))

        signature = request_signature(data)

        result = transfer_service.transfer_funds(
            g.org_id,
            from_account_id,
            to_account_id,
            amount_cents,
            data.get("description"),
            user_id=g.current_user.id,
            signature=signature,
        )
        return jsonify(result), 201
    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("transfer funds")


def _parse_legs(value, field: str) -> list:
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list")
    legs = []
    for leg in value:
        if not isinstance(leg, dict):
            raise ValidationError(f"Each {field} entry must be an object")
        legs.append(transfer_service.TransferLeg(
            account_id=parse_int(leg.get("account_id"), f"{field}.account_id"),
            amount_cents=parse_cents(leg.get("amount_cents"), f"{field}.amount_cents"),
        ))
    return legs


@finance_bp.post("/transfers/split")
@require_auth
def split_transfer_route():
    """
    Request body:
    {
        "sources": [{"account_id": 1, "amount_cents": 60000}, ...],
        "destinations": [{"account_id": 3, "amount_cents": 100000}],
        "total_cents": 100000,
        "description": "...",
        "pin": "1234"
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        sources = _parse_legs(data.get("sources"), "sources")
        destinations = _parse_legs(data.get("destinations"), "destinations")
        total_cents = parse_cents(data.get("total_cents"), "total_cents")

        signature = request_signature(data)

        result = transfer_service.split_transfer_funds(
            g.org_id,
            sources,
            destinations,
            total_cents,
            data.get("description"),
            user_id=g.current_user.id,
            signature=signature,
        )
        return jsonify(result), 201
    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("split transfer")


# =============================================================================
# VIEWS
# =============================================================================

@finance_bp.get("/liquidity")
@require_auth
def liquidity_route():
    try:
        return jsonify({"success": True, **account_service.get_liquidity_summary(g.org_id)})
    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("build liquidity summary")


@finance_bp.get("/audit")
@require_auth
@require_admin
def audit_route():
    try:
        return jsonify({"success": True, **audit_service.audit_integrity(g.org_id)})
    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("run integrity audit")


@finance_bp.post("/verification")
@require_auth
def verification_route():
    """Request body: {"kind": "DEBIT" | "CREDIT", "id": 31, "is_verified": true}"""
    try:
        data = require_json_object(request.get_json(silent=True))
        row_id = parse_int(data.get("id"), "id", required=True)
        result = statement_service.toggle_verification(
            g.org_id,
            data.get("kind"),
            row_id,
            parse_bool(data.get("is_verified"), "is_verified", default=True),
            user_id=g.current_user.id,
        )
        return jsonify(result)
    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("toggle verification")
