"""
Premium checkout through Stripe and idempotent payment reconciliation.

The Stripe payment intent id is the idempotency key: a payment is recorded
and the user upgraded at most once per intent, however many times the
client reports the same checkout session.
"""

import logging
import os
from typing import Any, Dict, Optional

import stripe
from fastapi import HTTPException
from pymongo.errors import DuplicateKeyError

from database import now
from schemas import Payment

logger = logging.getLogger(__name__)

stripe.api_key = os.getenv("STRIPE_SECRET_KEY")
CLIENT_DOMAIN = os.getenv("CLIENT_DOMAIN", "http://localhost:5173")
PREMIUM_PRODUCT_NAME = os.getenv("PREMIUM_PRODUCT_NAME", "WisdomCell Premium")
PREMIUM_CURRENCY = os.getenv("PREMIUM_CURRENCY", "usd")


def create_checkout_session(price: float, user_email: str, user_name: Optional[str]) -> Dict[str, str]:
    if price <= 0:
        raise HTTPException(status_code=400, detail="Price must be positive")
    session = stripe.checkout.Session.create(
        mode="payment",
        line_items=[
            {
                "price_data": {
                    "currency": PREMIUM_CURRENCY,
                    "product_data": {"name": PREMIUM_PRODUCT_NAME},
                    "unit_amount": int(round(price * 100)),
                },
                "quantity": 1,
            }
        ],
        customer_email=user_email,
        metadata={"userEmail": user_email, "userName": user_name or ""},
        success_url=f"{CLIENT_DOMAIN}/payment-success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{CLIENT_DOMAIN}/payment-cancel",
    )
    logger.info("Checkout session %s created for %s", session.id, user_email)
    return {"url": session.url}


def retrieve_session(session_id: str):
    return stripe.checkout.Session.retrieve(session_id)


def reconcile_payment(db, session_id: Optional[str]) -> Dict[str, Any]:
    if not session_id:
        raise HTTPException(status_code=400, detail="Missing sessionId")
    session = retrieve_session(session_id)

    if getattr(session, "payment_status", None) != "paid":
        raise HTTPException(status_code=400, detail="Payment not completed")

    transaction_id = getattr(session, "payment_intent", None)
    if not transaction_id:
        raise HTTPException(status_code=400, detail="Session has no payment intent")
    metadata = getattr(session, "metadata", None)
    user_email = getattr(metadata, "userEmail", None)
    user_name = getattr(metadata, "userName", None)
    if not user_email:
        raise HTTPException(status_code=400, detail="Session has no payer email")

    already = {"success": True, "message": "Payment already processed", "transactionId": transaction_id}
    if db["payment"].find_one({"transactionId": transaction_id}):
        logger.info("Payment %s already processed", transaction_id)
        return already

    paid_at = now()
    payment = Payment(
        transactionId=transaction_id,
        userEmail=user_email,
        userName=user_name or None,
        amount=(getattr(session, "amount_total", 0) or 0) / 100,
        currency=getattr(session, "currency", None) or PREMIUM_CURRENCY,
        paidAt=paid_at,
    )
    try:
        inserted = db["payment"].insert_one(payment.model_dump())
    except DuplicateKeyError:
        logger.info("Payment %s recorded by a concurrent request", transaction_id)
        return already

    upgraded = db["user"].update_one(
        {"email": user_email},
        {"$set": {"isPremium": True, "premiumSince": paid_at}},
    )
    if upgraded.matched_count == 0:
        logger.warning("Payment %s is for unknown user %s", transaction_id, user_email)
    logger.info("Payment %s processed, %s is premium", transaction_id, user_email)
    return {"success": True, "transactionId": transaction_id, "paymentId": str(inserted.inserted_id)}
