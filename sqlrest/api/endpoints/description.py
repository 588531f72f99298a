import logging

from fastapi import APIRouter, HTTPException, Response, status
from sqlalchemy.exc import SQLAlchemyError

from sqlrest.api.dependencies import db_dep, processor_dep
from sqlrest.core.config import settings
from sqlrest.core.errors import DefinitionError
from sqlrest.core.generator.openapi import generate_description

router = APIRouter(tags=["Description"])

MEDIA_TYPES = {"yaml": "text/vnd.yaml", "json": "application/json"}


async def _describe(db, output: str) -> Response:
    try:
        document = await generate_description(
            db,
            output,
            exclude=settings.GENERATOR_EXCLUDE,
            title=settings.API_TITLE,
            version=settings.API_VERSION,
        )
    except SQLAlchemyError as error:
        logging.error(f"Failed to read the database catalog: {error}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read the database catalog",
        )
    return Response(content=document, media_type=MEDIA_TYPES[output])


# Generated description of the connected database
@router.get("/openapi.yaml")
async def description_yaml(db: db_dep):
    return await _describe(db, "yaml")


@router.get("/openapi.json")
async def description_json(db: db_dep):
    return await _describe(db, "json")


# Reload the definition file, the previous definition stays active if this fails
@router.get("/load")
async def reload_definition(processor: processor_dep):
    try:
        snapshot = await processor.store.reload()
    except DefinitionError as error:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error.message
        )
    return {
        "message": "Loaded OpenAPI definition",
        "routes": len(snapshot.routes),
        "links": len(snapshot.links),
    }
