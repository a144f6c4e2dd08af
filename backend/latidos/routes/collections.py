# Overview: Flask API routes for collections; pending invoices, cascading payments and credit redemption.

# backend/latidos/routes/collections.py
"""
Collections API Routes

WHY: The collections screen takes one payment from a customer and spreads
it over their open invoices oldest first.

FLOW:
1. GET pending invoices / debt summary for the customer
2. POST cascade with the amount received
3. On 409 OVERPAYMENT_NOT_ALLOWED, confirm with the operator and resubmit
   with allow_surplus_banking=true
"""

from flask import Blueprint, request, jsonify, g

from ..services import invoice_service, payment_service, credit_service
from ..services.errors import FinanceError
from ..decorators import require_auth
from ..responses import error_response, internal_error, request_signature
from ..validation import (
    parse_bool,
    parse_cents,
    parse_int,
    parse_int_list,
    parse_str,
    require_json_object,
)


collections_bp = Blueprint("collections", __name__, url_prefix="/api/collections")


@collections_bp.get("/customers/<int:customer_id>/pending")
@require_auth
def pending_invoices_route(customer_id: int):
    """Open invoices of a customer, oldest first (empty list when nothing is owed)."""
    try:
        invoices = invoice_service.get_pending_invoices(g.org_id, customer_id)
        return jsonify({"success": True, "invoices": invoices})
    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("list pending invoices")


@collections_bp.get("/customers/<int:customer_id>/summary")
@require_auth
def debt_summary_route(customer_id: int):
    try:
        summary = invoice_service.get_customer_debt_summary(g.org_id, customer_id)
        return jsonify({"success": True, **summary})
    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("build debt summary")


@collections_bp.post("/cascade")
@require_auth
def cascade_payment_route():
    """
    Apply one payment across a customer's open invoices.

    Request body:
    {
        "customer_id": 12,
        "amount_cents": 7000000,
        "invoice_ids": [31, 35],          (optional; default all open)
        "method": "CASH",
        "account_id": 3,                  (optional; default account)
        "allow_surplus_banking": false,   (optional)
        "reference": "...",               (optional)
        "pin": "1234"                     (optional unless required)
    }

    Returns:
        200: applied_payments, remaining_credit_cents, credit_balance_cents
        400: invalid input
        403: PIN rejected
        404: customer, invoice or account not found
        409: overpayment needs confirmation (carries leftover_cents)
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        customer_id = parse_int(data.get("customer_id"), "customer_id", required=True)
        amount_cents = parse_cents(data.get("amount_cents"))
        invoice_ids = parse_int_list(data.get("invoice_ids"), "invoice_ids")
        account_id = parse_int(data.get("account_id"), "account_id")
        allow_surplus = parse_bool(data.get("allow_surplus_banking"), "allow_surplus_banking")

        signature = request_signature(data)

        result = payment_service.process_cascade_payment(
            g.org_id,
            customer_id,
            amount_cents,
            invoice_ids=invoice_ids,
            method=data.get("method") or payment_service.METHOD_CASH,
            account_id=account_id,
            allow_surplus_banking=allow_surplus,
            reference=parse_str(data.get("reference"), "reference", max_length=128),
            notes=parse_str(data.get("notes"), "notes", max_length=255),
            user_id=g.current_user.id,
            signature=signature,
        )
        return jsonify(result), 200

    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("process cascade payment")


@collections_bp.post("/redeem")
@require_auth
def redeem_credit_route():
    """
    Spend a customer's credit balance on open invoices.

    Request body:
    {
        "customer_id": 12,
        "invoice_ids": [31],    (optional; default all open)
        "amount_cents": 30000,  (optional; default whole balance)
        "pin": "1234"
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        customer_id = parse_int(data.get("customer_id"), "customer_id", required=True)
        invoice_ids = parse_int_list(data.get("invoice_ids"), "invoice_ids")
        amount_cents = parse_cents(data.get("amount_cents"), required=False)

        signature = request_signature(data)

        result = credit_service.redeem_credit_balance(
            g.org_id,
            customer_id,
            invoice_ids,
            amount_cents,
            reference=parse_str(data.get("reference"), "reference", max_length=128),
            user_id=g.current_user.id,
            signature=signature,
        )
        return jsonify(result), 200

    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("redeem credit balance")
