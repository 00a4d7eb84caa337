import logging

from dotenv import load_dotenv
from fastapi import FastAPI

from party_engine.api.routes import router
from party_engine.content.singleton import get_content
from party_engine.content.startup import init_content_for_app

load_dotenv()

app = FastAPI(title="party-engine", version="0.1.0")
app.include_router(router)
# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@app.on_event("startup")
async def _startup() -> None:
    init_content_for_app()
    logger.info("content loaded dynamics=%s", len(get_content()))


@app.get("/info")
async def info() -> dict[str, object]:
    return {"name": "party-engine", "version": "0.1.0", "dynamics": len(get_content())}
