"""API routes for iKhokha payments, seller billing and the renewal cron."""
from __future__ import annotations

import hmac
import logging
import os
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Header, HTTPException, Query, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import RedirectResponse

from ... import app_context
from ..payments import PaymentError
from ..schemas.payments import (
    BillingCycleResponse,
    BillingSummaryResponse,
    CheckoutRequest,
    CheckoutResponse,
    NotificationResponse,
    PublishStatusResponse,
)
from ..services.payments import get_payments_service

logger = logging.getLogger(__name__)

_SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")


def _error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error": code, "message": message})


def _get_current_user(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
):
    user = app_context.get_current_user(session_token=session_token)
    if user is None:
        raise _error(status.HTTP_401_UNAUTHORIZED, "unauthorized", "Authentication required")
    return user


router = APIRouter(prefix="/api/payments/ikhokha", tags=["payments"])
seller_router = APIRouter(prefix="/api/seller", tags=["seller-billing"])
cron_router = APIRouter(prefix="/api/cron", tags=["cron"])


@router.post("/create-checkout", response_model=CheckoutResponse)
def create_checkout(
    payload: CheckoutRequest,
    *,
    current_user=Depends(_get_current_user),
) -> CheckoutResponse:
    if not payload.plan_id or not payload.plan_slug:
        raise _error(status.HTTP_400_BAD_REQUEST, "missing_fields", "Missing required fields: planId, planSlug")

    service = get_payments_service()
    try:
        result = service.create_checkout(
            user_id=str(current_user.id),
            plan_id=payload.plan_id,
            plan_slug=payload.plan_slug,
        )
    except PaymentError as exc:
        logger.warning("Checkout rejected for user %s: %s", current_user.id, exc.code)
        raise exc.to_http_exception() from exc
    except Exception as exc:
        logger.exception("Checkout failed for user %s", current_user.id)
        raise _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "internal_error",
            "Failed to create checkout session",
        ) from exc
    return CheckoutResponse.from_result(result)


@router.post("/notify", response_model=NotificationResponse)
async def receive_notification(request: Request) -> NotificationResponse:
    # The signature covers the exact bytes sent, so the body must not be re-parsed first.
    raw_body = await request.body()
    service = get_payments_service()
    try:
        ack = await run_in_threadpool(service.handle_notification, request.headers, raw_body)
    except PaymentError as exc:
        raise exc.to_http_exception() from exc
    except Exception as exc:
        logger.exception("Unexpected error processing payment notification")
        raise _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "internal_error",
            "Notification processing failed",
        ) from exc
    return NotificationResponse.from_ack(ack)


@router.get("/return")
def payment_return(
    reference: Optional[str] = Query(None),
    demo: Optional[str] = Query(None),
    payment_status: Optional[str] = Query(None, alias="status"),
) -> RedirectResponse:
    service = get_payments_service()
    url = service.handle_return(reference, demo=demo, status=payment_status)
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


@router.get("/cancel")
def payment_cancel(reference: Optional[str] = Query(None)) -> RedirectResponse:
    service = get_payments_service()
    url = service.handle_cancel(reference)
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


@seller_router.get("/billing", response_model=BillingSummaryResponse)
def seller_billing(*, current_user=Depends(_get_current_user)) -> BillingSummaryResponse:
    service = get_payments_service()
    summary = service.billing_summary(str(current_user.id))
    return BillingSummaryResponse.from_summary(summary)


@seller_router.get("/publish-status", response_model=PublishStatusResponse)
def seller_publish_status(*, current_user=Depends(_get_current_user)) -> PublishStatusResponse:
    service = get_payments_service()
    return PublishStatusResponse.from_status(service.publish_status(str(current_user.id)))


def _require_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    secret = get_payments_service().config.cron_secret
    expected = f"Bearer {secret}" if secret else None
    if not expected or not authorization or not hmac.compare_digest(authorization.encode(), expected.encode()):
        raise _error(status.HTTP_401_UNAUTHORIZED, "unauthorized", "Invalid cron secret")


@cron_router.api_route("/billing", methods=["GET", "POST"], response_model=BillingCycleResponse)
def run_billing_cycle(_: None = Depends(_require_cron_secret)) -> BillingCycleResponse:
    service = get_payments_service()
    result = service.run_billing_cycle()
    return BillingCycleResponse.from_result(result)


__all__ = ["cron_router", "router", "seller_router"]
