"""
Comparison routes for SetupDiff.

Compares indexed setups by location, or uploaded exports directly.
"""
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, UploadFile, File, HTTPException, Query

from core import (
    compare_setups,
    format_report,
    parse_setup,
    parse_setup_file,
    ComparisonResult,
    InsufficientDocuments,
)
from api.schemas import CompareRequest, ComparisonResponse
from config import settings

router = APIRouter()


def _check_count(count: int):
    if count > settings.MAX_COMPARE:
        raise HTTPException(
            status_code=400,
            detail=f"At most {settings.MAX_COMPARE} setups can be compared at once"
        )


def _insufficient(e: InsufficientDocuments) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={
            "message": str(e),
            "failures": [
                {"source": source, "error": type(error).__name__, "detail": error.message}
                for source, error in e.failures
            ],
        }
    )


def _response(result: ComparisonResult, report: bool) -> ComparisonResponse:
    payload = result.to_dict()
    if report:
        payload["report"] = format_report(result)
    return ComparisonResponse(**payload)


@router.post("", response_model=ComparisonResponse)
async def compare_indexed(request: CompareRequest, report: bool = Query(False)):
    """
    Compare setups from the index, in the order given.

    Every path must be a location listed by the index.
    """
    from api.main import get_index_service

    _check_count(len(request.paths))

    service = get_index_service()
    if not service:
        raise HTTPException(status_code=503, detail="Setup index is not configured")

    for path in request.paths:
        if path not in service.index:
            raise HTTPException(status_code=404, detail=f"Setup not indexed: {path}")

    against_first = settings.COMPARE_AGAINST_FIRST if request.against_first is None else request.against_first

    try:
        result = compare_setups(
            request.paths,
            parse=parse_setup_file,
            epsilon=settings.NUMERIC_EPSILON,
            against_first=against_first,
            **settings.parse_options(),
        )
    except InsufficientDocuments as e:
        raise _insufficient(e)

    return _response(result, report)


@router.post("/files", response_model=ComparisonResponse)
async def compare_files(
    files: list[UploadFile] = File(...),
    against_first: Optional[bool] = Query(None),
    report: bool = Query(False),
):
    """
    Compare uploaded setup exports, in upload order.
    """
    _check_count(len(files))

    contents = {}
    names = []
    for i, upload in enumerate(files):
        filename = upload.filename or f"upload-{i + 1}"
        if not filename.lower().endswith(tuple(settings.SETUP_EXTENSIONS)):
            raise HTTPException(status_code=400, detail=f"Not a setup export: {filename}")
        # Uploads may share a file name
        key = filename if filename not in contents else f"{filename} ({i + 1})"
        contents[key] = await upload.read()
        names.append(key)

    def parse_upload(name: str, **kwargs):
        return parse_setup(
            contents[name],
            setup_name=Path(name).stem,
            source=name,
            **kwargs
        )

    if against_first is None:
        against_first = settings.COMPARE_AGAINST_FIRST

    try:
        result = compare_setups(
            names,
            parse=parse_upload,
            epsilon=settings.NUMERIC_EPSILON,
            against_first=against_first,
            **settings.parse_options(),
        )
    except InsufficientDocuments as e:
        raise _insufficient(e)

    return _response(result, report)
