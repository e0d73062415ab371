import uvicorn

from app.core.app_factory import create_app
from app.core.config import settings
from app.core.logging import configure_logging

configure_logging(settings.log)

app = create_app(settings)


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    uvicorn.run(
        "app.main:app",
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,
    )


if __name__ == "__main__":
    run()
