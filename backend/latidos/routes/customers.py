# Overview: Flask API routes for customer finance views; statements and credit history.

from flask import Blueprint, request, jsonify, g

from ..services import credit_service, statement_service
from ..services.errors import FinanceError
from ..decorators import require_auth
from ..responses import error_response, internal_error
from ..validation import parse_date_range


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("/<int:customer_id>/statement")
@require_auth
def statement_route(customer_id: int):
    """
    Customer statement (invoices as debits, payments as credits).

    Query params:
    - start_date: ISO date/datetime (optional)
    - end_date: ISO date/datetime, a bare date is inclusive (optional)
    """
    try:
        start, end = parse_date_range(request.args)
        statement = statement_service.get_customer_statement(g.org_id, customer_id, start, end)
        return jsonify({"success": True, **statement})
    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("build customer statement")


@customers_bp.get("/<int:customer_id>/credit-history")
@require_auth
def credit_history_route(customer_id: int):
    try:
        history = credit_service.get_credit_history(g.org_id, customer_id)
        return jsonify({"success": True, **history})
    except FinanceError as e:
        return error_response(e)
    except Exception:
        return internal_error("load credit history")
