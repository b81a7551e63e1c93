import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.database import Database as MongoDatabase
from pymongo.errors import PyMongoError

import auth
import carts
import catalog
import orders
import reporting
import webhooks
import wishlists
from config import get_settings
from database import Database, ensure_indexes, get_db
from errors import register_exception_handlers

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    database = Database(settings.database_url, settings.database_name)
    app.state.db = database.connect()
    try:
        ensure_indexes(app.state.db)
    except PyMongoError as e:
        logger.warning("Could not ensure indexes: %s", e)
    yield
    database.close()
    app.state.db = None


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Storefront API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    for module in (auth, catalog, carts, wishlists, orders, reporting, webhooks):
        app.include_router(module.router)

    @app.get("/")
    def read_root():
        return {"message": "Storefront backend running"}

    @app.get("/api/health")
    def health():
        return {"success": True}

    @app.get("/test")
    def test_database(db: MongoDatabase = Depends(get_db)):
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_url": "✅ Set" if settings.database_url else "❌ Not Set",
            "database_name": settings.database_name,
            "connection_status": "Not Connected",
            "collections": [],
            "stripe": "✅ Configured" if settings.stripe_secret_key else "⚠️ Missing STRIPE_SECRET_KEY",
        }
        try:
            response["collections"] = db.list_collection_names()[:10]
            response["database"] = "✅ Connected"
            response["connection_status"] = "Connected"
        except PyMongoError as e:
            response["database"] = f"⚠️ Error: {str(e)[:80]}"
        return response

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
