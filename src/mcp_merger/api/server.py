"""
FastAPI server for MCP Merger.

Exposes configuration merging, extension conversion and the Google OAuth
flow over HTTP for the desktop viewer.
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Type

from fastapi import Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mcp_merger import __version__
from mcp_merger.api.endpoints import MergerEndpoints
from mcp_merger.api.middleware import (
    ErrorHandlingMiddleware, RequestLoggingMiddleware, SecurityMiddleware
)
from mcp_merger.api.models import (
    AccountListResponse, APIResponse, AuthStartRequest, AuthStartResponse,
    AuthStatusRequest, AuthStatusResponse, ConflictResponse,
    ConvertExtensionsRequest, ConvertExtensionsResponse, ErrorResponse,
    ExtensionListResponse, HealthCheckResponse, MergeRequest, MergeResponse,
    RevokeRequest, RevokeResponse, TokenExchangeRequest, TokenExchangeResponse,
)
from mcp_merger.core.exceptions import (
    ClientSecretInvalid, ClientSecretMissing, InvalidInput, MCPMergerError,
    MissingServerSpec, TokenCorrupt, TokenExchangeFailed, TokenExchangeTimeout,
)
from mcp_merger.utils.config import Config, get_config
from mcp_merger.utils.logging import get_logger

logger = get_logger(__name__)

ERROR_STATUS_CODES: Dict[Type[MCPMergerError], int] = {
    InvalidInput: 400,
    MissingServerSpec: 400,
    ClientSecretMissing: 404,
    ClientSecretInvalid: 422,
    TokenCorrupt: 500,
    TokenExchangeFailed: 502,
    TokenExchangeTimeout: 504,
}


def status_code_for(error: MCPMergerError) -> int:
    """HTTP status for a domain error."""
    for error_type in type(error).__mro__:
        if error_type in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[error_type]
    return 500


class APIServer:
    """MCP Merger API server."""

    def __init__(self, config: Optional[Config] = None, endpoints: Optional[MergerEndpoints] = None):
        """Initialize API server."""
        self.config = config or get_config()
        self.endpoints = endpoints or MergerEndpoints(self.config)
        self.app = self._create_app()

    @asynccontextmanager
    async def lifespan(self, app: FastAPI):
        """Manage application lifespan."""
        logger.info("API server starting up")
        yield
        logger.info("API server shutting down")

    def _create_app(self) -> FastAPI:
        """Create and configure FastAPI application."""
        app = FastAPI(
            title="MCP Merger API",
            description="Merge MCP server configurations and manage Google credentials",
            version=__version__,
            lifespan=self.lifespan,
        )

        self._add_middleware(app)
        self._add_exception_handlers(app)
        self._add_routes(app)

        return app

    def _add_middleware(self, app: FastAPI) -> None:
        """Add middleware stack to FastAPI app."""
        app.add_middleware(SecurityMiddleware)
        app.add_middleware(
            CORSMiddleware,
            allow_origins=self.config.api.allowed_origins,
            allow_credentials=False,
            allow_methods=["GET", "POST"],
            allow_headers=["Content-Type"],
        )
        app.add_middleware(RequestLoggingMiddleware)
        # Added last so it is outermost
        app.add_middleware(ErrorHandlingMiddleware)

    def _add_exception_handlers(self, app: FastAPI) -> None:
        """Map domain and validation errors to JSON error responses."""

        @app.exception_handler(MCPMergerError)
        async def handle_domain_error(request: Request, exc: MCPMergerError) -> JSONResponse:
            status = status_code_for(exc)
            logger.warning(f"{request.method} {request.url.path} failed: {exc}")
            body = ErrorResponse(
                error=exc.message,
                error_code=exc.error_code,
                details=exc.details or None,
            )
            return JSONResponse(status_code=status, content=body.model_dump(by_alias=True, mode="json"))

        @app.exception_handler(RequestValidationError)
        async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
            errors = exc.errors()
            first = errors[0] if errors else {}
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"
            body = ErrorResponse(error=message, error_code="INVALID_INPUT")
            return JSONResponse(status_code=400, content=body.model_dump(by_alias=True, mode="json"))

    def _add_routes(self, app: FastAPI) -> None:
        """Add API routes to FastAPI app."""
        endpoints = self.endpoints

        @app.get("/health", response_model=HealthCheckResponse)
        def health_check():
            """Health check endpoint."""
            return endpoints.health_check()

        @app.post("/api/merge-mcp", response_model=MergeResponse)
        def merge_mcp(request: MergeRequest):
            """Merge new MCP servers into an existing configuration."""
            return endpoints.merge(request)

        @app.post("/api/merge-mcp/conflicts", response_model=ConflictResponse)
        def merge_conflicts(request: MergeRequest):
            """List server names a merge would overwrite."""
            return endpoints.conflicts(request)

        @app.get("/api/extensions", response_model=ExtensionListResponse)
        def list_extensions():
            """List installed extensions."""
            return endpoints.list_extensions()

        @app.post("/api/extensions/convert", response_model=ConvertExtensionsResponse)
        def convert_extensions(request: ConvertExtensionsRequest):
            """Convert installed extensions into server entries."""
            return endpoints.convert_extensions(request)

        @app.post("/api/auth/status", response_model=AuthStatusResponse)
        def auth_status(request: AuthStatusRequest):
            """Google auth status of configured servers."""
            return endpoints.auth_status(request)

        @app.post("/api/auth/start", response_model=AuthStartResponse)
        def start_authorization(request: AuthStartRequest):
            """Build the Google authorization URL."""
            return endpoints.start_authorization(request)

        @app.post("/api/auth/exchange", response_model=TokenExchangeResponse)
        def exchange_code(request: TokenExchangeRequest):
            """Exchange an authorization code for tokens."""
            return endpoints.exchange_code(request)

        @app.get("/oauth2callback", response_model=TokenExchangeResponse)
        def oauth_callback(code: str, state: str):
            """Provider redirect target."""
            return endpoints.oauth_callback(code, state)

        @app.post("/api/auth/revoke", response_model=RevokeResponse)
        def revoke(request: RevokeRequest):
            """Forget the stored token of an account."""
            return endpoints.revoke(request)

        @app.get("/api/auth/accounts", response_model=AccountListResponse)
        def list_accounts():
            """Accounts with stored tokens."""
            return endpoints.list_accounts()

        @app.post("/api/client-secret", response_model=APIResponse)
        def save_installation_client_secret(payload: Any = Body(...)):
            """Install the OAuth client secret."""
            return endpoints.save_client_secret(payload)

        @app.post("/api/client-secret/{account_id}", response_model=APIResponse)
        def save_account_client_secret(account_id: str, payload: Any = Body(...)):
            """Store an account-scoped client secret."""
            return endpoints.save_client_secret(payload, account_id)

    def run(self, host: Optional[str] = None, port: Optional[int] = None) -> None:
        """Run the API server."""
        import uvicorn

        host = host or self.config.api.host
        port = port or self.config.api.port
        logger.info(f"Starting API server on http://{host}:{port}")

        uvicorn.run(self.app, host=host, port=port, log_level="info")


def create_api_server(config: Optional[Config] = None) -> APIServer:
    """Factory function to create API server."""
    return APIServer(config)
