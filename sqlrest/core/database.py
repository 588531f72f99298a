from sqlalchemy.ext.asyncio import create_async_engine

from sqlrest.core.config import settings

engine = create_async_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)


# Hands a connection to the routes; each statement opens its own transaction on it
async def get_db():
    async with engine.connect() as conn:
        yield conn
