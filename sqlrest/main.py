import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from sqlrest.api.router import api_router
from sqlrest.core.config import settings
from sqlrest.core.database import engine
from sqlrest.core.errors import DefinitionError
from sqlrest.core.rest.definitions import DefinitionStore
from sqlrest.core.rest.processor import RestProcessor
from sqlrest.core.rest.triggers import TriggerRegistry

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Built once; reloads replace the store's snapshot, never the store itself
store = DefinitionStore(settings.DEFINITION_FILE, settings.DEFAULT_ID_COLUMN)
triggers = TriggerRegistry()
processor = RestProcessor(
    store,
    triggers,
    default_page_size=settings.DEFAULT_PAGE_SIZE,
    clear_error_function=settings.CLEAR_ERROR_FUNCTION,
)


# Load the API definition before serving and close the engine once everything is done
@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await store.reload()
    except DefinitionError as error:
        # Requests answer "not loaded yet" until /load succeeds
        logger.error(f"API definition not loaded: {error.message}")

    yield
    await engine.dispose()


app = FastAPI(title=settings.API_TITLE, lifespan=lifespan)
app.state.processor = processor

# Include the master router containing all our endpoints
app.include_router(api_router)


@app.get("/")
async def root():
    return {"message": f"Resources are served under {settings.API_PREFIX}"}
