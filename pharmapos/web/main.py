from __future__ import annotations

import logging
from typing import Any, Dict

import jwt
from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import FileResponse, JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from pharmapos.constants import DISCOUNT_TYPES, PMS_ROLES, VAT_RATE
from pharmapos.db.sqlite import (
    dashboard_overview,
    get_sale,
    get_sales_session,
    init_db,
    low_stock_items,
    recent_transactions,
    record_sale,
)
from pharmapos.services import auth
from pharmapos.services.pricing import compute_totals
from pharmapos.services.receipt_pdf import generate_receipt_pdf
from pharmapos.web.schemas import (
    CheckoutIn,
    ForgotPasswordIn,
    PmsLoginIn,
    PosLoginIn,
    ResetPasswordIn,
    TotalsIn,
    TotalsOut,
    VerifyResetTokenIn,
)

log = logging.getLogger(__name__)

app = FastAPI(title="Pharmacy POS")

_bearer = HTTPBearer(auto_error=False)


@app.on_event("startup")
def _startup() -> None:
    init_db()


# ---------------- auth deps ----------------

def _claims(creds: HTTPAuthorizationCredentials | None = Depends(_bearer)) -> Dict[str, Any]:
    if creds is None:
        raise HTTPException(status_code=401, detail="Missing token")
    try:
        return auth.decode_token(creds.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def require_pms(claims: Dict[str, Any] = Depends(_claims)) -> Dict[str, Any]:
    if claims.get("role") not in PMS_ROLES:
        raise HTTPException(status_code=403, detail="Admin or manager role required")
    return claims


def require_pos(claims: Dict[str, Any] = Depends(_claims)) -> Dict[str, Any]:
    if not claims.get("sessionId"):
        raise HTTPException(status_code=403, detail="POS session required")
    return claims


# ---------------- auth ----------------

@app.post("/api/auth/pms/login")
def pms_login(body: PmsLoginIn):
    result = auth.pms_login(body.employee_id, body.password)
    if result is None:
        return JSONResponse({"message": "Invalid credentials"}, status_code=401)
    return result


@app.post("/api/auth/pos/login")
def pos_login(body: PosLoginIn):
    try:
        result = auth.pos_login(body.pin_code)
    except Exception:
        log.exception("POS login error")
        return JSONResponse({"message": "Server error"}, status_code=500)
    if result is None:
        return JSONResponse({"message": "Invalid PIN code"}, status_code=401)
    return result


@app.post("/api/auth/forgot-password")
def forgot_password(body: ForgotPasswordIn):
    try:
        found = auth.forgot_password(body.employee_id, body.email)
    except Exception:
        log.exception("forgot password error")
        return JSONResponse(
            {"success": False, "message": "Error processing password reset request"},
            status_code=500,
        )
    if not found:
        return JSONResponse(
            {"success": False, "message": "No user found with the provided employee ID and email"},
            status_code=404,
        )
    return {"success": True, "message": "Password reset instructions have been sent to your email"}


@app.post("/api/auth/verify-reset-token")
def verify_reset_token(body: VerifyResetTokenIn):
    ok, msg = auth.verify_reset_token(body.employee_id, body.token)
    return JSONResponse({"success": ok, "message": msg}, status_code=200 if ok else 400)


@app.post("/api/auth/reset-password")
def reset_password(body: ResetPasswordIn):
    ok, msg = auth.reset_password(body.employee_id, body.token, body.new_password)
    return JSONResponse({"success": ok, "message": msg}, status_code=200 if ok else 400)


# ---------------- dashboard ----------------

@app.get("/api/dashboard/overview")
def overview(_: Dict[str, Any] = Depends(require_pms)):
    try:
        return dashboard_overview()
    except Exception as e:
        log.exception("dashboard overview error")
        return JSONResponse({"message": "Error fetching dashboard data", "error": str(e)}, status_code=500)


@app.get("/api/dashboard/recent-transactions")
def transactions(_: Dict[str, Any] = Depends(require_pms)):
    try:
        return {"transactions": recent_transactions()}
    except Exception as e:
        log.exception("recent transactions error")
        return JSONResponse({"message": "Error fetching recent transactions", "error": str(e)}, status_code=500)


@app.get("/api/dashboard/low-stock")
def low_stock(_: Dict[str, Any] = Depends(require_pms)):
    try:
        return {"items": low_stock_items()}
    except Exception as e:
        log.exception("low stock error")
        return JSONResponse({"message": "Error fetching low stock items", "error": str(e)}, status_code=500)


# ---------------- pos ----------------

@app.get("/api/pos/discount-types")
def discount_types():
    return {"discountTypes": DISCOUNT_TYPES, "vatRate": VAT_RATE}


@app.post("/api/pos/totals", response_model=TotalsOut)
def totals(body: TotalsIn, _: Dict[str, Any] = Depends(require_pos)):
    result = compute_totals([it.to_item() for it in body.items], body.discount.to_selection())
    return result.as_dict()


@app.post("/api/pos/checkout")
def checkout(body: CheckoutIn, claims: Dict[str, Any] = Depends(require_pos)):
    session = get_sales_session(int(claims["sessionId"]))
    if session is None:
        raise HTTPException(status_code=401, detail="Sales session not found")

    ok, err, sale = record_sale(
        session_id=int(session["session_id"]),
        branch_id=int(session["branch_id"]),
        lines=[(ln.product_id, ln.quantity) for ln in body.items],
        selection=body.discount.to_selection(),
        payment_method=body.payment_method,
        customer_id=body.customer_id,
    )
    if not ok:
        raise HTTPException(status_code=400, detail=err)
    return {"sale": sale}


@app.get("/api/pos/receipt/{sale_id}", response_class=FileResponse)
def receipt(sale_id: int, claims: Dict[str, Any] = Depends(require_pos)):
    sale, _items = get_sale(sale_id)
    if sale is None:
        raise HTTPException(status_code=404, detail="Sale not found")
    if sale["branch_id"] != claims.get("branchId"):
        raise HTTPException(status_code=403, detail="Sale belongs to another branch")
    path = generate_receipt_pdf(sale_id)
    return FileResponse(path, media_type="application/pdf", filename=f"{sale['invoice_number']}.pdf")
