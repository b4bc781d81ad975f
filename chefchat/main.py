import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes_ai import router as ai_router
from .api.routes_conversation import router as conversation_router
from .api.routes_friends import router as friends_router
from .api.routes_realtime import cancel_exchanges
from .api.routes_realtime import router as realtime_router
from .api.routes_users import router as users_router
from .config import get_config
from .middleware.request_log import RequestLogMiddleware
from .services import ChatServices, build_services

VERSION = "1.0.0"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stdout,
)


def create_app(services: Optional[ChatServices] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app):
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services(get_config())
        yield
        await cancel_exchanges()

    app = FastAPI(title="ChefChat Backend", version=VERSION, lifespan=lifespan)
    app.state.services = services

    config = services.config if services else get_config()
    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )

    app.include_router(users_router)
    app.include_router(friends_router)
    app.include_router(conversation_router)
    app.include_router(ai_router)
    app.include_router(realtime_router)

    @app.get("/api/health")
    async def health_check():
        state = app.state.services
        online = state.presence.online_count if state else 0
        return {"status": "ok", "version": VERSION, "online": online}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=5000)
