# Overview: Flask API routes for payments operations; parses input and returns JSON responses.

# backend/latidos/routes/payments.py
"""
Payment API Routes

- POST   /api/payments        pay a single invoice
- PATCH  /api/payments/<id>   edit amount/method/account (reason required)
- DELETE /api/payments/<id>   delete with compensation (reason required)

Edits and deletes are audited in payment_audits with the signer snapshot.
"""

from flask import Blueprint, request, jsonify, g

from ..services import payment_service
from ..services.errors import FinanceError
from ..decorators import require_auth
from ..responses import error_response, internal_error, request_signature
from ..validation import parse_bool, parse_cents, parse_int, parse_str, require_json_object


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("")
@require_auth
def register_payment_route():
    """
    Register a payment against one invoice.

    Request body:
    {
        "sale_id": 31,
        "amount_cents": 50000,
        "method": "TRANSFER",
        "account_id": 4,
        "allow_surplus_banking": false,
        "reference": "TRX-9981",
        "pin": "1234"
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        sale_id = parse_int(data.get("sale_id"), "sale_id", required=True)
        amount_cents = parse_cents(data.get("amount_cents"))
        account_id = parse_int(data.get("account_id"), "account_id")
        allow_surplus = parse_bool(data.get("allow_surplus_banking"), "allow_surplus_banking")

        signature = request_signature(data)

        result = payment_service.register_payment(
            g.org_id,
            sale_id,
            amount_cents,
            method=data.get("method") or payment_service.METHOD_CASH,
            account_id=account_id,
            allow_surplus_banking=allow_surplus,
            reference=parse_str(data.get("reference"), "reference", max_length=128),
            notes=parse_str(data.get("notes"), "notes", max_length=255),
            user_id=g.current_user.id,
            signature=signature,
        )
        return jsonify(result), 201

    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("register payment")


@payments_bp.patch("/<int:payment_id>")
@require_auth
def update_payment_route(payment_id: int):
    """
    Edit a payment.

    Request body:
    {
        "reason": "Wrong amount typed",   (min 5 characters)
        "amount_cents": 45000,            (optional)
        "method": "CASH",                 (optional)
        "account_id": 2,                  (optional)
        "pin": "1234"
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        amount_cents = parse_cents(data.get("amount_cents"), required=False)
        account_id = parse_int(data.get("account_id"), "account_id")

        signature = request_signature(data)

        result = payment_service.update_payment(
            g.org_id,
            payment_id,
            data.get("reason"),
            amount_cents=amount_cents,
            method=data.get("method"),
            account_id=account_id,
            user_id=g.current_user.id,
            signature=signature,
        )
        return jsonify(result), 200

    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("update payment")


@payments_bp.delete("/<int:payment_id>")
@require_auth
def delete_payment_route(payment_id: int):
    """Delete a payment. Body: {"reason": "...", "pin": "..."}"""
    try:
        data = require_json_object(request.get_json(silent=True))
        signature = request_signature(data)

        result = payment_service.delete_payment(
            g.org_id,
            payment_id,
            data.get("reason"),
            user_id=g.current_user.id,
            signature=signature,
        )
        return jsonify(result), 200

    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("delete payment")
