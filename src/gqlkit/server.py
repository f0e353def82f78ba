"""
GraphQL server startup
"""

from collections.abc import Mapping
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from strawberry.fastapi import GraphQLRouter
from strawberry.subscriptions import GRAPHQL_TRANSPORT_WS_PROTOCOL, GRAPHQL_WS_PROTOCOL

from . import __version__
from .config import settings
from .context import ContextFunction, make_context_getter
from .database import create_tables, init_database
from .database.connection import check_database_connection
from .loader import build_schema, validate_schema
from .logging import configure_logging, get_logger
from .middleware import LoggingContextMiddleware
from .versions import REQUIRED_VERSIONS, ensure_package_versions

logger = get_logger(__name__)


def initialize(
    config: Mapping[str, Any] | None = None,
    *,
    context: ContextFunction | None = None,
    app: FastAPI | None = None,
) -> FastAPI:
    """Start the GraphQL server for everything loaded so far.

    Call once from the host application's startup code, after the modules
    that ``load`` or ``expose`` schema pieces have been imported.

    Args:
        config: Overrides applied to a copy of ``Config`` for this server
        context: Function of the HTTP/WebSocket connection returning extra
            resolver context (sync or async)
        app: Existing FastAPI application to mount on (a new one by default)

    Returns:
        The FastAPI application serving GraphQL at ``graphql_path``

    Raises:
        IncompatibleVersionsError: If a dependency is outside its supported range
        SchemaLoadError: If the loaded schema is incomplete or invalid
    """
    options = settings.merged(dict(config or {}))

    configure_logging(debug=options.debug, log_level=options.log_level)
    logger.info("Initializing GraphQL server", environment=options.environment)

    if options.check_versions:
        ensure_package_versions(REQUIRED_VERSIONS)

    init_database(options.database_url, options=options)
    if options.auto_create_tables:
        create_tables()

    schema = build_schema(introspection=options.introspection, mask_errors=options.mask_errors)
    validate_schema(schema)

    if app is None:
        app = FastAPI(title="gqlkit", version=__version__, debug=options.debug)

        @app.get("/health")
        async def health_check():  # pyright: ignore [reportUnusedFunction]
            """Health check endpoint."""
            db_ok, db_error = await check_database_connection()
            if not db_ok:
                logger.warning("Health check: database unavailable", error=db_error)
            return {
                "status": "healthy" if db_ok else "degraded",
                "version": __version__,
                "database": "ok" if db_ok else "unavailable",
            }

    app.add_middleware(LoggingContextMiddleware, graphql_path=options.graphql_path)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=options.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    protocols = (
        (GRAPHQL_TRANSPORT_WS_PROTOCOL, GRAPHQL_WS_PROTOCOL) if options.enable_subscriptions else ()
    )
    graphql_router = GraphQLRouter(
        schema,
        path=options.graphql_path,
        graphql_ide="graphiql" if options.gui else None,
        context_getter=make_context_getter(options, context),
        subscription_protocols=protocols,
    )
    app.include_router(graphql_router, prefix="")

    logger.info(
        "GraphQL endpoint initialized",
        endpoint=options.graphql_path,
        subscriptions=options.enable_subscriptions,
        gui=options.gui,
    )
    return app
