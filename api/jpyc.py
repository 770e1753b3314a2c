from fastapi import APIRouter, Request, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from models.errors import CheckoutError
from models.jpyc import JPYCExecuteRequest, JPYCExecuteResponse
from services import jpyc as jpyc_service
from services.pricing import yen_to_wei
import json
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


def error_response(status_code: int, error: str, step: str, /, **debug) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "debug": {"step": step, **debug}},
    )


@router.post("/jpyc/execute", response_model=JPYCExecuteResponse, tags=["jpyc"])
async def execute_jpyc_payment(request: Request):
    """permit 署名を検証し、リレーウォレットで permit → transferFrom を実行する"""
    try:
        try:
            body = json.loads(await request.body())
        except ValueError as e:
            return error_response(400, "リクエストの形式が不正です", "json_parse", error=str(e))

        try:
            execute_request = JPYCExecuteRequest.model_validate(body)
        except ValidationError as e:
            return error_response(400, "必須フィールドが不足しています", "validation", error=e.errors(include_url=False, include_context=False))

        # 送信・確定待ちはブロッキングなのでスレッドプールで実行する
        result = await run_in_threadpool(jpyc_service.execute_settlement, execute_request)

        return JPYCExecuteResponse(
            permitTxHash=result.permit_tx_hash,
            transferTxHash=result.transfer_tx_hash,
            transactionHash=result.transfer_tx_hash,
            debug={
                "owner": execute_request.owner,
                "receiver": execute_request.receiver,
                "amount": execute_request.amount,
                "orderId": execute_request.orderId,
            },
        )
    except CheckoutError as e:
        return JSONResponse(status_code=e.status_code, content=e.to_content())
    except Exception as e:
        logger.error("JPYC決済APIで予期しないエラーが発生しました", exc_info=True)
        return error_response(500, "サーバーエラーが発生しました", "catch_all", errorMessage=str(e), errorType=type(e).__name__)


@router.get("/jpyc/permit-typed-data", tags=["jpyc"])
def get_permit_typed_data(
    owner: str = Query(..., description="署名するウォレットアドレス"),
    amount: str = Query(..., description="円建ての金額 (1 JPYC = 1円)"),
):
    """ウォレットに渡す EIP-712 Permit データ (nonce はチェーンから取得)"""
    try:
        if not amount.isdigit():
            return error_response(400, "amount は整数の文字列で指定してください", "validation")
        typed_data = jpyc_service.create_permit_typed_data(owner, yen_to_wei(amount))
        return typed_data.to_wallet_payload()
    except CheckoutError as e:
        return JSONResponse(status_code=e.status_code, content=e.to_content())
    except Exception as e:
        logger.error("Permitデータの作成に失敗しました", exc_info=True)
        return error_response(500, "Permit データの作成に失敗しました", "catch_all", errorMessage=str(e))
