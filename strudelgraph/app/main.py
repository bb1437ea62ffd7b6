from __future__ import annotations

import argparse
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from strudelgraph.app.api import node_types, normalize
from strudelgraph.app.core.config import Settings, get_settings
from strudelgraph.app.core.container import AppContainer
from strudelgraph.app.core.logging import configure_logging
from strudelgraph.app.services.node_schema_service import NodeSchemaService
from strudelgraph.app.services.normalizer_service import NormalizerService


def _build_container(settings: Settings) -> AppContainer:
    node_schema_service = NodeSchemaService(schema_path=settings.node_schema_path)
    normalizer_service = NormalizerService(
        node_schema_service=node_schema_service,
        rules=settings.normalization_rules(),
    )

    return AppContainer(
        settings=settings,
        node_schema_service=node_schema_service,
        normalizer_service=normalizer_service,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.debug)

    app.state.container = _build_container(settings)
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(node_types.router, prefix=settings.api_prefix)
    app.include_router(normalize.router, prefix=settings.api_prefix)

    @app.get("/api/health")
    async def health() -> dict[str, str | int]:
        container: AppContainer = app.state.container
        return {
            "status": "ok",
            "node_types": len(container.node_schema_service.list_node_types()),
            "fan_out_policy": container.normalizer_service.rules.fan_out_policy.value,
        }

    return app


app = create_app()


def run() -> None:
    parser = argparse.ArgumentParser(description="Run the Strudel graph normalizer API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--log-level", default="info")
    parser.add_argument("--reload", action=argparse.BooleanOptionalAction, default=False)
    parser.add_argument("--node-schema", default=None, help="JSON file with additional node type definitions.")
    parser.add_argument("--debug", action=argparse.BooleanOptionalAction, default=None)
    args = parser.parse_args()

    if args.node_schema is not None:
        os.environ["STRUDELGRAPH_NODE_SCHEMA_PATH"] = args.node_schema
    if args.debug is True:
        os.environ["STRUDELGRAPH_DEBUG"] = "1"
    elif args.debug is False:
        os.environ["STRUDELGRAPH_DEBUG"] = "0"

    get_settings.cache_clear()
    globals()["app"] = create_app()

    uvicorn.run(
        "strudelgraph.app.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    run()
