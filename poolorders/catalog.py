"""
Pool models, colors and factory locations. Reads are public; writes are admin-only.
"""
import logging

from poolorders import storage
from poolorders.errors import NotFound, ValidationError
from poolorders.models import Color, FactoryLocation, PoolModel
from poolorders.orders import Upload

logger = logging.getLogger(__name__)

MODEL_MEDIA_COLUMNS = {"image": "image_url", "blueprint": "blueprint_url"}


def _name(fields: dict, required: bool) -> dict:
    if "name" not in fields:
        if required:
            raise ValidationError("name is required")
        return fields
    name = (fields["name"] or "").strip()
    if not name:
        raise ValidationError("name is required")
    return dict(fields, name=name)


async def list_pool_models(db) -> list[PoolModel]:
    async with db.connection() as repo:
        return await repo.list_pool_models()


async def list_colors(db) -> list[Color]:
    async with db.connection() as repo:
        return await repo.list_colors()


async def list_factories(db, active_only: bool = True) -> list[FactoryLocation]:
    async with db.connection() as repo:
        return await repo.list_factories(active_only=active_only)


async def create_pool_model(db, fields: dict) -> PoolModel:
    fields = _name(fields, required=True)
    async with db.transaction() as repo:
        return await repo.insert_pool_model(**fields)


async def update_pool_model(db, pool_model_id: str, fields: dict) -> PoolModel:
    fields = _name(fields, required=False)
    async with db.transaction() as repo:
        model = await repo.update_pool_model(pool_model_id, fields)
    if model is None:
        raise NotFound("Pool model not found")
    return model


async def upload_pool_model_media(db, pool_model_id: str, media_type: str | None, upload: Upload) -> PoolModel:
    """Store a product image (image/*) or a blueprint (PDF or image) and link it on the model."""
    kind = (media_type or "").strip()
    if kind not in MODEL_MEDIA_COLUMNS:
        raise ValidationError("type must be image or blueprint")
    if not upload.data:
        raise ValidationError("file is required")
    mime = (upload.content_type or "").lower()
    if kind == "image" and not mime.startswith("image/"):
        raise ValidationError("image file required")
    if kind == "blueprint" and mime != "application/pdf" and not mime.startswith("image/"):
        raise ValidationError("blueprint must be PDF or image")

    async with db.connection() as repo:
        if await repo.get_pool_model(pool_model_id) is None:
            raise NotFound("Pool model not found")
    url = await storage.put_file(f"pool-models/{pool_model_id}", upload.filename, upload.data, upload.content_type)
    async with db.transaction() as repo:
        model = await repo.update_pool_model(pool_model_id, {MODEL_MEDIA_COLUMNS[kind]: url})
    if model is None:
        raise NotFound("Pool model not found")
    logger.info("Pool model %s %s stored at %s", pool_model_id, kind, url)
    return model


async def create_color(db, fields: dict) -> Color:
    fields = _name(fields, required=True)
    async with db.transaction() as repo:
        return await repo.insert_color(**fields)


async def update_color(db, color_id: str, fields: dict) -> Color:
    fields = _name(fields, required=False)
    async with db.transaction() as repo:
        color = await repo.update_color(color_id, fields)
    if color is None:
        raise NotFound("Color not found")
    return color


async def create_factory(db, fields: dict) -> FactoryLocation:
    fields = _name(fields, required=True)
    async with db.transaction() as repo:
        return await repo.insert_factory(**fields)


async def update_factory(db, factory_id: str, fields: dict) -> FactoryLocation:
    fields = _name(fields, required=False)
    async with db.transaction() as repo:
        factory = await repo.update_factory(factory_id, fields)
    if factory is None:
        raise NotFound("Factory not found")
    return factory
