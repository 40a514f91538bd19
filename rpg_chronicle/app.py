import asyncio
import logging
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI

from rpg_chronicle import storage
from rpg_chronicle.engine import TurnOrchestrator
from rpg_chronicle.llm import HttpImageGenerator, HttpNarrator, ImageGenerator, Narrator
from rpg_chronicle.routes import router

load_dotenv(Path(__file__).parent.parent / ".env")

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def build_narrator(config: dict[str, Any]) -> HttpNarrator:
    conn = config["narrator"]
    return HttpNarrator(
        provider_url=conn["provider_url"],
        api_key=conn["api_key"],
        provider_format=conn["provider_format"],
        model=conn["model"],
        timeout=float(conn["timeout"]),
    )


def build_image_generator(config: dict[str, Any]) -> HttpImageGenerator | None:
    conn = config["images"]
    if not conn["enabled"] or not conn["provider_url"]:
        return None
    return HttpImageGenerator(
        provider_url=conn["provider_url"],
        api_key=conn["api_key"],
        model=conn["model"],
        size=conn["size"],
        timeout=float(conn["timeout"]),
    )


def create_app(
    data_dir: Path | None = None,
    narrator: Narrator | None = None,
    images: ImageGenerator | None = None,
) -> FastAPI:
    """Build the API app.

    Backends come from config unless `narrator` is given; injected backends
    are kept as they are when settings change.
    """
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    storage.init_storage(resolved)

    app = FastAPI(title="RPG Chronicle")
    app.include_router(router, prefix="/api")

    if narrator is None:
        config = storage.get_config()
        orchestrator = TurnOrchestrator(build_narrator(config), build_image_generator(config))

        def reconnect(new_config: dict[str, Any]) -> None:
            orchestrator.reconnect(build_narrator(new_config), build_image_generator(new_config))
            logger.info("backends reconnected format=%s", new_config["narrator"]["provider_format"])

        app.state.reconnect = reconnect
    else:
        orchestrator = TurnOrchestrator(narrator, images)
        app.state.reconnect = None

    app.state.orchestrator = orchestrator
    app.state.turn_lock = asyncio.Lock()
    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
