"""
Conversion endpoints.

Thin layer: read the upload/body, hand it to the pipeline, wrap the result.
Domain errors propagate to the handlers in sheetbridge.middleware.error_handler.
"""

from typing import Any, Dict, Optional
from urllib.parse import quote

from fastapi import APIRouter, Body, Depends, File, Query, UploadFile
from fastapi.responses import Response

from sheetbridge.services.container import get_conversion_service, get_schema_generator
from sheetbridge.services.conversion_service import (
    ConversionService,
    DEFAULT_OUTPUT_FILENAME,
    output_filename,
    validate_spreadsheet_upload,
)
from sheetbridge.services.schema_generation import SchemaGenerator
from sheetbridge.utils.app_logger import get_logger

logger = get_logger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

router = APIRouter(tags=["conversion"])


def content_disposition(filename: str) -> str:
    """Attachment header with an ASCII fallback name and the RFC 5987 UTF-8 form."""
    fallback = "".join(
        ch if " " <= ch <= "~" and ch not in '"\\' else "_" for ch in filename
    )
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


def _spreadsheet_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": content_disposition(filename)},
    )


@router.post("/excel-to-json")
async def excel_to_json(
    file: UploadFile = File(...),
    use_ai: bool = Query(False, alias="useAI"),
    service: ConversionService = Depends(get_conversion_service),
) -> Dict[str, Any]:
    """Convert an .xlsx/.xlsm upload into {sheet: [row, ...]}."""
    content = await file.read()
    logger.info("excel-to-json: file=%s size=%d useAI=%s", file.filename, len(content), use_ai)
    data = await service.excel_to_json(content, file.filename or "", use_ai)
    return {"data": data}


@router.post("/json-to-excel")
async def json_file_to_excel(
    file: UploadFile = File(...),
    use_ai: bool = Query(False, alias="useAI"),
    filename: Optional[str] = Query(None),
    service: ConversionService = Depends(get_conversion_service),
) -> Response:
    """Convert a .json upload into an .xlsx attachment."""
    content = await file.read()
    logger.info("json-to-excel: file=%s size=%d useAI=%s", file.filename, len(content), use_ai)
    name = output_filename(filename, file.filename)
    result = await service.json_file_to_excel(content, file.filename or "", use_ai)
    return _spreadsheet_response(result, name)


@router.post("/json-to-excel/raw")
async def json_to_excel(
    payload: Any = Body(...),
    use_ai: bool = Query(False, alias="useAI"),
    filename: str = Query(DEFAULT_OUTPUT_FILENAME),
    service: ConversionService = Depends(get_conversion_service),
) -> Response:
    """Convert a JSON body (object, array of objects, or map of sheets) into an .xlsx attachment."""
    name = output_filename(filename)
    result = await service.json_to_excel(payload, use_ai)
    return _spreadsheet_response(result, name)


@router.post("/generate-schema")
async def generate_schema(
    file: UploadFile = File(...),
    generator: SchemaGenerator = Depends(get_schema_generator),
    service: ConversionService = Depends(get_conversion_service),
) -> Dict[str, Any]:
    """Infer a JSON Schema from a small sample of an uploaded spreadsheet."""
    content = await file.read()
    name = validate_spreadsheet_upload(file.filename, content, max_bytes=service.max_upload_bytes)
    logger.info("generate-schema: file=%s size=%d", name, len(content))
    schema = await generator.generate(content, name)
    return {"data": schema}
