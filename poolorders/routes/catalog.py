from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse
from pydantic import BaseModel

from poolorders import catalog
from poolorders.auth import Identity, Operation, require
from poolorders.db import Database, get_db
from poolorders.errors import NotFound
from poolorders.order_state import requirement_table
from poolorders.orders import read_upload
from poolorders.storage import resolve_local

router = APIRouter(tags=["catalog"])


class PoolModelBody(BaseModel):
    name: str
    length_ft: float | None = None
    width_ft: float | None = None
    depth_ft: float | None = None
    shape: str | None = None


class PoolModelPatch(BaseModel):
    name: str | None = None
    length_ft: float | None = None
    width_ft: float | None = None
    depth_ft: float | None = None
    shape: str | None = None


class ColorBody(BaseModel):
    name: str
    swatch_url: str | None = None


class ColorPatch(BaseModel):
    name: str | None = None
    swatch_url: str | None = None


class FactoryBody(BaseModel):
    name: str
    active: bool = True


class FactoryPatch(BaseModel):
    name: str | None = None
    active: bool | None = None


@router.get("/catalog/pool-models")
async def list_pool_models(db: Database = Depends(get_db)):
    return await catalog.list_pool_models(db)


@router.get("/catalog/colors")
async def list_colors(db: Database = Depends(get_db)):
    return await catalog.list_colors(db)


@router.get("/catalog/factories")
async def list_factories(db: Database = Depends(get_db)):
    return await catalog.list_factories(db, active_only=True)


@router.get("/catalog/requirements")
async def list_requirements() -> list[dict]:
    """Documents and fields each pipeline status requires before an order may enter it."""
    return requirement_table()


@router.post("/admin/pool-models", status_code=201)
async def create_pool_model(
    body: PoolModelBody,
    identity: Identity = Depends(require(Operation.CATALOG_WRITE)),
    db: Database = Depends(get_db),
):
    return await catalog.create_pool_model(db, body.model_dump())


@router.patch("/admin/pool-models/{pool_model_id}")
async def update_pool_model(
    pool_model_id: str,
    body: PoolModelPatch,
    identity: Identity = Depends(require(Operation.CATALOG_WRITE)),
    db: Database = Depends(get_db),
):
    return await catalog.update_pool_model(db, pool_model_id, body.model_dump(exclude_unset=True))


@router.post("/admin/pool-models/{pool_model_id}/media")
async def upload_pool_model_media(
    pool_model_id: str,
    file: UploadFile = File(...),
    type: str = Form(..., description="image or blueprint"),
    identity: Identity = Depends(require(Operation.CATALOG_WRITE)),
    db: Database = Depends(get_db),
):
    return await catalog.upload_pool_model_media(db, pool_model_id, type, await read_upload(file))


@router.post("/admin/colors", status_code=201)
async def create_color(
    body: ColorBody,
    identity: Identity = Depends(require(Operation.CATALOG_WRITE)),
    db: Database = Depends(get_db),
):
    return await catalog.create_color(db, body.model_dump())


@router.patch("/admin/colors/{color_id}")
async def update_color(
    color_id: str,
    body: ColorPatch,
    identity: Identity = Depends(require(Operation.CATALOG_WRITE)),
    db: Database = Depends(get_db),
):
    return await catalog.update_color(db, color_id, body.model_dump(exclude_unset=True))


@router.get("/admin/factories")
async def list_all_factories(
    identity: Identity = Depends(require(Operation.CATALOG_WRITE)),
    db: Database = Depends(get_db),
):
    return await catalog.list_factories(db, active_only=False)


@router.post("/admin/factories", status_code=201)
async def create_factory(
    body: FactoryBody,
    identity: Identity = Depends(require(Operation.CATALOG_WRITE)),
    db: Database = Depends(get_db),
):
    return await catalog.create_factory(db, body.model_dump())


@router.patch("/admin/factories/{factory_id}")
async def update_factory(
    factory_id: str,
    body: FactoryPatch,
    identity: Identity = Depends(require(Operation.CATALOG_WRITE)),
    db: Database = Depends(get_db),
):
    return await catalog.update_factory(db, factory_id, body.model_dump(exclude_unset=True, exclude_none=True))


@router.get("/uploads/{path:path}")
async def serve_upload(path: str) -> FileResponse:
    """Locally stored uploads (only used when no S3 bucket is configured)."""
    local = resolve_local(path)
    if local is None:
        raise NotFound("File not found")
    return FileResponse(local)
