import fastapi
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from . import connection, checkout, jpyc, reward, dashboard
import logging
import os

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

DEFAULT_ALLOWED_ORIGINS = "http://localhost:3000,http://localhost:5173"

app = fastapi.FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in os.getenv("ALLOWED_ORIGINS", DEFAULT_ALLOWED_ORIGINS).split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


def validation_error_message(exc: RequestValidationError) -> str:
    """リクエストボディの検証エラーを1行のメッセージにする"""
    errors = exc.errors()
    missing = [str(error["loc"][-1]) for error in errors if error["type"] == "missing"]
    if missing:
        return f"Missing required fields: {', '.join(missing)}"

    for error in errors:
        if error["loc"][-1] == "email":
            return "Invalid email format"
        if error["loc"][-1] == "payment_method":
            return "Invalid payment_method. Must be one of: bank, paypal, jpyc"

    if not errors:
        return "Invalid request"
    error = errors[0]
    return f"{'.'.join(str(part) for part in error['loc'][1:])}: {error['msg']}"


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # paypal-confirm は message キー、それ以外は error キー
    key = "message" if request.url.path.endswith("/paypal-confirm") else "error"
    return JSONResponse(
        status_code=400,
        content={"success": False, key: validation_error_message(exc), "debug": {"step": "validation"}},
    )


app.include_router(connection.router)
app.include_router(checkout.router)
app.include_router(jpyc.router)
app.include_router(reward.router)
app.include_router(dashboard.router)
