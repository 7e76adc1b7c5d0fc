"""
Setup index routes for SetupDiff.

Browse the indexed setups level by level: vehicle, track, setup.
"""
from fastapi import APIRouter, HTTPException, Query

from api.schemas import (
    ChildrenResponse,
    IndexEntrySchema,
    IndexServiceStats,
    RescanResponse,
    SetupListResponse,
)

router = APIRouter()


def split_prefix(prefix: str) -> list[str]:
    """ "Car1/Track1" -> ["Car1", "Track1"]; empty parts are ignored."""
    return [part for part in prefix.split("/") if part.strip()]


def _require_service():
    from api.main import get_index_service

    service = get_index_service()
    if not service:
        raise HTTPException(status_code=503, detail="Setup index is not configured")
    return service


@router.get("", response_model=SetupListResponse)
async def list_setups(prefix: str = Query("", description="Segments separated by '/'")):
    """List indexed setups under a prefix, in natural order."""
    service = _require_service()
    segments = split_prefix(prefix)

    setups = [IndexEntrySchema(**entry.to_dict()) for entry in service.index.list_prefix(segments)]
    return SetupListResponse(prefix=segments, count=len(setups), setups=setups)


@router.get("/children", response_model=ChildrenResponse)
async def list_children(prefix: str = Query("", description="Segments separated by '/'")):
    """Labels of the next level below a prefix (vehicles, then tracks, then setups)."""
    service = _require_service()
    segments = split_prefix(prefix)

    return ChildrenResponse(prefix=segments, children=service.index.children(segments))


@router.post("/rescan", response_model=RescanResponse)
async def rescan(watch: bool = Query(True)):
    """Re-walk the setups directory and rebuild the index, restarting a stopped watcher."""
    service = _require_service()

    try:
        count = service.rescan()
    except RuntimeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if watch:
        service.rearm()

    return RescanResponse(root=service.root, files_indexed=count)


@router.get("/status", response_model=IndexServiceStats)
async def index_status():
    """Index and watcher statistics."""
    from api.main import get_index_service

    service = get_index_service()
    if not service:
        return IndexServiceStats(is_running=False)

    return IndexServiceStats(**service.get_stats())
