from fastapi import APIRouter, Body, BackgroundTasks
from fastapi.responses import JSONResponse
from models.backing import (
    BankInfo,
    CheckoutRequest,
    CheckoutResponse,
    CheckoutResultData,
    PayPalConfirmRequest,
    PayPalConfirmResponse,
)
from models.errors import CheckoutError
from services import checkout as checkout_service
from api.email import send_backing_complete
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/checkout", response_model=CheckoutResponse, status_code=201, tags=["checkout"])
def create_checkout(
    background_tasks: BackgroundTasks,
    request: CheckoutRequest = Body(...),
):
    """支援者・支援・支援明細を作成する"""
    try:
        context = checkout_service.checkout(request)
        background_tasks.add_task(send_backing_complete, context)

        return CheckoutResponse(data=CheckoutResultData(
            backing_id=context.backing.backing_id,
            backer_id=context.backer.backer_id,
            total_amount=context.backing.total_amount,
            payment_method=context.backing.payment_method,
        ))
    except CheckoutError as e:
        return JSONResponse(status_code=e.status_code, content=e.to_content())
    except Exception as e:
        logger.error("Checkout API error", exc_info=True)
        return JSONResponse(status_code=500, content={"success": False, "error": str(e) or "Internal server error"})


@router.post("/checkout/paypal-confirm", response_model=PayPalConfirmResponse, tags=["checkout"])
def confirm_paypal_payment(
    background_tasks: BackgroundTasks,
    request: PayPalConfirmRequest = Body(...),
):
    """PayPal 決済をキャプチャ・金額検証してから注文を作成する"""
    try:
        context = checkout_service.confirm_paypal(request)
        background_tasks.add_task(send_backing_complete, context)

        return PayPalConfirmResponse(
            backing_id=context.backing.backing_id,
            backer_id=context.backer.backer_id,
        )
    except CheckoutError as e:
        return JSONResponse(status_code=e.status_code, content=e.to_content("message"))
    except Exception as e:
        logger.error("PayPal confirmation error", exc_info=True)
        return JSONResponse(status_code=500, content={"success": False, "message": str(e) or "Internal server error"})


@router.get("/checkout/bank-info", response_model=BankInfo, tags=["checkout"])
def get_bank_info():
    """銀行振込先の表示情報"""
    try:
        return checkout_service.get_bank_info()
    except CheckoutError as e:
        return JSONResponse(status_code=e.status_code, content=e.to_content())
