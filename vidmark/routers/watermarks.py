from fastapi import APIRouter, Depends

from vidmark.core.container import Container
from vidmark.routers.deps import get_container

router = APIRouter(prefix="/watermarks", tags=["watermarks"])


@router.get("")
def list_watermarks(container: Container = Depends(get_container)) -> dict:
    return {"success": True, "items": container.catalog.entries()}
