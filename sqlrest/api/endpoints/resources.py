from fastapi import APIRouter, Request

from sqlrest.api.dependencies import db_dep, processor_dep

router = APIRouter(tags=["Resources"])


# Every table route of the loaded definition is served from here
@router.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def process_resource(path: str, request: Request, db: db_dep, processor: processor_dep):
    body = await request.body()
    return await processor.process(
        db,
        method=request.method,
        path=path,
        query=dict(request.query_params),
        body=body,
        url=request.url.path,
    )
