from __future__ import annotations

from fastapi import FastAPI

from .routes import simulation_router


def create_app() -> FastAPI:
    """
    Instantiate the FastAPI application and register routers.

    Returns:
        FastAPI: Configured FastAPI application instance ready to serve.

    Example:
        ```python
        app = create_app()
        uvicorn.run(app, host="0.0.0.0", port=8000)

        # Or use the pre-created instance
        from sim_home_ems.api.app import app
        ```
    """
    app = FastAPI(
        title="Home EMS A/B Simulator API",
        version="0.1.0",
        description="API to simulate residential energy strategies side by side.",
    )

    from fastapi.middleware.cors import CORSMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(simulation_router)

    return app


app = create_app()
