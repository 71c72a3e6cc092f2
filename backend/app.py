import random
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from backend.routes import router
from manzai.config import Settings
from manzai.ledger import JsonUsageStore, UsageStore
from manzai.llm import LLM, HttpLLM
from manzai.pipeline.orchestrator import RequestOrchestrator

load_dotenv(Path(__file__).parent.parent / ".env")


def create_app(
    settings: Settings | None = None,
    llm: LLM | None = None,
    store: UsageStore | None = None,
    rng: random.Random | None = None,
) -> FastAPI:
    resolved = settings or Settings.from_env()

    app = FastAPI(title="Manzai Writer")
    app.state.settings = resolved
    app.state.orchestrator = RequestOrchestrator(
        settings=resolved,
        llm=llm or HttpLLM.from_settings(resolved),
        store=store or JsonUsageStore(resolved.data_dir),
        rng=rng,
    )
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (uses MANZAI_* env vars)
app = create_app()
