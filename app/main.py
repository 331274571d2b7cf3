import logging
import time
from typing import Optional

from fastapi import Depends, FastAPI, File, Header, Response, UploadFile, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app import settings
from app.matcher.cache import MatcherCache
from app.models import (
    BatchMatchRequest,
    ErrorResponse,
    ExportRequest,
    ForwardMatchResult,
    InputRecord,
    UploadResponse,
)
from app.spreadsheet import (
    XLSX_MEDIA_TYPE,
    SpreadsheetError,
    generate_template,
    is_spreadsheet_filename,
    read_records,
    write_results,
)

logging.getLogger("app").setLevel(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# 参考库只加载一次，所有请求共享同一个匹配器
matcher_cache = MatcherCache()


class APIError(Exception):
    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        *,
        request_id: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        self.status_code = status_code
        self.error = error
        self.message = message
        self.request_id = request_id
        self.details = details


def verify_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
):
    """
    API Key 验证：
    - 客户端发送 `X-API-Key`，需要出现在 API_KEYS 环境变量里。
    - 未配置 API_KEYS 时，ALLOW_KEYLESS_ACCESS=true 直接放行，否则返回 500 提示未配置鉴权。
    """
    if not settings.ALLOWED_API_KEYS:
        if settings.ALLOW_KEYLESS_ACCESS:
            return
        raise APIError(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error="auth_not_configured",
            message=(
                "Authentication is not configured. Set the API_KEYS environment "
                "variable, or explicitly opt-in to keyless access with "
                "ALLOW_KEYLESS_ACCESS=true."
            ),
        )

    if x_api_key is None or x_api_key not in settings.ALLOWED_API_KEYS:
        raise APIError(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error="unauthorized",
            message="Invalid or missing API key. Send header 'X-API-Key'.",
        )


app = FastAPI(
    title="CN Address Mapping API",
    description=(
        "Reconcile an external party's province/city/district records against the "
        "reference address catalog and rate every reference entry's match.\n"
        "- Code match, exact name, suffix-normalized name and fuzzy name, level by level.\n"
        "- Every reference entry is reported, matched or not, with a confidence band.\n"
        "- Spreadsheet upload, template download and result export.\n\n"
        "把局方的省/市/区县记录与参考地址库逐条对应，并给出匹配度与信心。\n"
        "- 逐级尝试 编码 -> 精确名称 -> 去后缀名称 -> 模糊名称。\n"
        "- 参考库每一条都会出现在结果里，未匹配的标记为需人工确认。\n"
        "- 支持 Excel 上传、模板下载和结果导出。"
    ),
    version="1.0.0",
)

_ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {
        "model": ErrorResponse,
        "description": "Invalid or unreadable upload / 上传文件无效或无法读取",
    },
    status.HTTP_401_UNAUTHORIZED: {
        "model": ErrorResponse,
        "description": (
            "Unauthorized: missing or invalid X-API-Key / API Key 缺失或无效"
        ),
    },
    status.HTTP_422_UNPROCESSABLE_ENTITY: {
        "model": ErrorResponse,
        "description": (
            "Validation error: request body failed schema checks / "
            "请求体验证失败"
        ),
    },
    status.HTTP_500_INTERNAL_SERVER_ERROR: {
        "model": ErrorResponse,
        "description": "Internal server error / 服务内部错误",
    },
}


@app.exception_handler(APIError)
async def handle_api_error(_, exc: APIError):
    payload = ErrorResponse(
        error=exc.error,
        message=exc.message,
        request_id=exc.request_id,
        details=exc.details,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(payload),
    )


@app.exception_handler(RequestValidationError)
async def handle_validation_error(_, exc: RequestValidationError):
    payload = ErrorResponse(
        error="validation_error",
        message="Request body failed validation",
        details={"errors": exc.errors()},
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=jsonable_encoder(payload),
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(_, exc: Exception):
    logger.exception("Unhandled application error: %s", exc)
    payload = ErrorResponse(
        error="internal_error",
        message="Internal server error",
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=jsonable_encoder(payload),
    )


def _xlsx_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _batch_response(records) -> UploadResponse:
    results = matcher_cache.get().batch_match(records)
    return UploadResponse(
        results=results,
        original_inputs=records,
        message=f"成功处理 {len(results)} 条地址数据",
    )


@app.get("/health")
def healthcheck():
    return {"ok": True}


@app.get("/template", dependencies=[Depends(verify_api_key)])
def template_endpoint() -> Response:
    return _xlsx_response(generate_template(), "address-template.xlsx")


@app.post(
    "/upload",
    response_model=UploadResponse,
    responses=_ERROR_RESPONSES,
    dependencies=[Depends(verify_api_key)],
)
def upload_endpoint(file: Optional[UploadFile] = File(None)) -> UploadResponse:
    if file is None or not file.filename:
        raise APIError(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="missing_file",
            message="未找到上传文件",
        )
    if not is_spreadsheet_filename(file.filename):
        raise APIError(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="invalid_file_type",
            message="文件格式不正确，请上传 Excel 文件（.xlsx, .xlsm）",
            details={"filename": file.filename},
        )

    try:
        records = read_records(file.file.read())
    except SpreadsheetError as exc:
        raise APIError(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="unreadable_file",
            message=str(exc),
        ) from exc

    if not records:
        raise APIError(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="empty_file",
            message="Excel 文件中没有找到有效数据",
        )

    logger.info("Upload %s: %d input records", file.filename, len(records))
    return _batch_response(records)


@app.post(
    "/batch-match",
    response_model=UploadResponse,
    responses=_ERROR_RESPONSES,
    dependencies=[Depends(verify_api_key)],
)
def batch_match_endpoint(req: BatchMatchRequest) -> UploadResponse:
    return _batch_response(req.records)


@app.post(
    "/match",
    response_model=ForwardMatchResult,
    responses=_ERROR_RESPONSES,
    dependencies=[Depends(verify_api_key)],
)
def match_endpoint(record: InputRecord) -> ForwardMatchResult:
    return matcher_cache.get().match(record)


@app.post(
    "/export",
    responses=_ERROR_RESPONSES,
    dependencies=[Depends(verify_api_key)],
)
def export_endpoint(req: ExportRequest) -> Response:
    content = write_results(item.output for item in req.results)
    logger.info("Exported %d results", len(req.results))
    filename = f"address-mapping-result-{int(time.time() * 1000)}.xlsx"
    return _xlsx_response(content, filename)
