from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncConnection

from sqlrest.core.database import get_db
from sqlrest.core.rest.processor import RestProcessor


def get_processor(request: Request) -> RestProcessor:
    return request.app.state.processor


db_dep = Annotated[AsyncConnection, Depends(get_db)]
processor_dep = Annotated[RestProcessor, Depends(get_processor)]
