from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

import models  # noqa: F401
from core.config import settings
from core.db import Base, engine
from core.errors import register_exception_handlers
from core.logging import configure_logging
from routes.addresses import router as addresses_router
from routes.orders import router as orders_router

configure_logging(settings.LOG_LEVEL)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


BEARER_SCHEME = {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}


def bearer_openapi():
    """OpenAPI document advertising the bearer token on every route but /health."""
    if app.openapi_schema:
        return app.openapi_schema
    schema = get_openapi(title=app.title, version=app.version, routes=app.routes)
    schema.setdefault("components", {})["securitySchemes"] = {"BearerAuth": BEARER_SCHEME}
    for path, operations in schema.get("paths", {}).items():
        if path == "/health":
            continue
        for operation in operations.values():
            operation["security"] = [{"BearerAuth": []}]
    app.openapi_schema = schema
    return schema


app.openapi = bearer_openapi

register_exception_handlers(app)

# Create any missing tables on startup
Base.metadata.create_all(bind=engine)

app.include_router(addresses_router)
app.include_router(orders_router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.DEBUG,
    )
