"""
ClearCurate API Server
FastAPI server for curation contributions and definition previews
"""

from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as SchemaError

from clearcurate import __version__
from clearcurate.config import CurateConfig
from clearcurate.errors import InvalidTransitionError, PreconditionError, UpstreamError, ValidationError
from clearcurate.logging_config import configure_logging
from clearcurate.models.contribution import ContributionPatch, ContributorInfo, PullRequestEvent
from clearcurate.models.coordinates import EntityCoordinates
from clearcurate.wiring import Services, build_services


def create_app(config: Optional[CurateConfig] = None, services: Optional[Services] = None) -> FastAPI:
    """
    Create the API application.

    Args:
        config: Configuration value, used to build services when none are given
        services: Prebuilt services, mainly for tests

    Returns:
        The FastAPI app, with its services on ``app.state.services``
    """
    if services is None:
        config = config or CurateConfig()
        logger = configure_logging(config.log_level, config.log_json)
        services = build_services(config, logger)

    app = FastAPI(
        title="ClearCurate API",
        description="Curation contributions and definition synthesis",
        version=__version__,
    )
    app.state.services = services

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": str(exc), "issues": exc.issues})

    @app.exception_handler(PreconditionError)
    async def precondition_error(request: Request, exc: PreconditionError):
        return JSONResponse(status_code=412, content={"error": str(exc), "missing": exc.missing})

    @app.exception_handler(UpstreamError)
    async def upstream_error(request: Request, exc: UpstreamError):
        services.logger.error("Upstream failure", extra={"operation": exc.operation, "error": str(exc)})
        return JSONResponse(status_code=502, content={"error": str(exc)})

    @app.exception_handler(InvalidTransitionError)
    async def transition_error(request: Request, exc: InvalidTransitionError):
        return JSONResponse(status_code=409, content={"error": str(exc)})

    @app.get("/health")
    async def health():
        """Health check"""
        return {"status": "ok", "version": __version__}

    @app.post("/webhook")
    async def webhook(body: Dict[str, Any]):
        """Pull request lifecycle events from the curation repository"""
        try:
            event = PullRequestEvent.model_validate(body)
        except SchemaError as e:
            raise HTTPException(status_code=400, detail=f"Invalid event: {e.errors()}")
        contribution = await services.lifecycle.handle(event)
        if contribution is None:
            return {"status": "ignored"}
        return {"status": "ok", "contribution": contribution.model_dump(mode="json")}

    @app.patch("/curations")
    async def add_or_update(body: Dict[str, Any]):
        """Open a contribution for a set of curation patches"""
        try:
            patch = ContributionPatch.model_validate(body)
            contributor = ContributorInfo.model_validate(
                body.get("contributor")
                or {"login": services.config.service_login, "email": services.config.service_email}
            )
        except SchemaError as e:
            raise HTTPException(status_code=400, detail=f"Invalid contribution: {e.errors()}")
        contribution = await services.contributions.add_or_update(patch, contributor)
        return {
            "prNumber": contribution.number,
            "url": services.contributions.get_curation_url(contribution.number),
            "branch": contribution.branch,
        }

    @app.get("/curations/pr/{number}")
    async def get_changed_definitions(number: int):
        """Definitions changed by a contribution"""
        changes = await services.contributions.get_changed_definitions(number)
        return {"url": services.contributions.get_curation_url(number), "changes": changes}

    @app.post("/curations")
    async def list_all(body: List[str]):
        """List curations and contributions for many coordinates"""
        coordinates = [_coordinates(item) for item in body]
        listings = await services.contributions.list_all(coordinates)
        return {key: listing.model_dump() for key, listing in listings.items()}

    @app.get("/curations/{type}/{provider}/{namespace}/{name}")
    async def list_curations(type: str, provider: str, namespace: str, name: str):
        """List curations and contributions for a component family"""
        coordinates = _coordinates(f"{type}/{provider}/{namespace}/{name}")
        listing = await services.contributions.list(coordinates)
        return listing.model_dump()

    @app.get("/curations/{type}/{provider}/{namespace}/{name}/{revision}")
    async def get_curation(type: str, provider: str, namespace: str, name: str, revision: str, pr: Optional[int] = None):
        """Get the curation patch for one revision"""
        coordinates = _coordinates(f"{type}/{provider}/{namespace}/{name}/{revision}")
        patch = await services.contributions.get(coordinates, pr)
        if patch is None:
            raise HTTPException(status_code=404, detail="Curation not found")
        return patch

    @app.get("/definitions/{type}/{provider}/{namespace}/{name}/{revision}")
    async def get_definition(type: str, provider: str, namespace: str, name: str, revision: str, pr: Optional[int] = None):
        """Get a definition, optionally previewing a contribution"""
        coordinates = _coordinates(f"{type}/{provider}/{namespace}/{name}/{revision}")
        return await services.definitions.get(coordinates, pr)

    return app


def _coordinates(path: str) -> EntityCoordinates:
    coordinates = EntityCoordinates.from_string(path)
    if coordinates is None:
        raise HTTPException(status_code=400, detail=f"Invalid coordinates: {path}")
    return coordinates
