"""
SolScope HTTP API.

Thin FastAPI adapter over the analysis pipeline:

    GET  /api/analyze-wallet?address=   live wallet metrics (Helius)
    POST /api/analyze-trades            queue the Dune trade query
    GET  /api/task/{execution_id}       poll a Dune execution (+ transformed trades)
    POST /api/generate-insights         Gemini insights for DetailedMetrics
    POST /api/analyze-trading           OpenAI review of transformed trades
    GET  /health
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import ScopeConfig
from .core.analyzer import WalletAnalyzer, validate_wallet_address
from .core.dune_client import STATE_PENDING, DuneClient
from .core.errors import SolScopeError
from .core.insights import GeminiInsightGenerator, OpenAITradingAnalyzer
from .core.metrics import get_metrics
from .core.redis_client import AnalysisCache
from .core.transformer import extract_rows, transform_dune_data

logger = logging.getLogger(__name__)


class AnalyzeTradesRequest(BaseModel):
    """Request body for /api/analyze-trades."""

    walletAddress: Optional[str] = None


class GenerateInsightsRequest(BaseModel):
    """Request body for /api/generate-insights."""

    prompt: Optional[str] = None
    metrics: Dict[str, Any] = {}


def create_app(
    analyzer: Optional[WalletAnalyzer] = None,
    dune_client: Optional[DuneClient] = None,
    insight_generator: Optional[GeminiInsightGenerator] = None,
    trading_analyzer: Optional[OpenAITradingAnalyzer] = None,
    cache: Optional[AnalysisCache] = None,
) -> FastAPI:
    """
    Build the API app.

    Every collaborator defaults to an env-configured instance; tests pass stubs.
    """
    metrics_sink = get_metrics()
    if cache is None:
        cache = AnalysisCache()
    if analyzer is None:
        analyzer = WalletAnalyzer(cache=cache, metrics_sink=metrics_sink)
    dune_client = dune_client or DuneClient()
    insight_generator = insight_generator or GeminiInsightGenerator()
    trading_analyzer = trading_analyzer or OpenAITradingAnalyzer()

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        logger.info("SolScope API starting")
        yield
        await analyzer.close()
        await dune_client.close()
        await insight_generator.close()
        await trading_analyzer.close()
        logger.info("SolScope API stopped")

    app = FastAPI(title="SolScope", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SolScopeError)
    async def handle_solscope_error(_request: Request, exc: SolScopeError):
        # 5xx answers never echo internal messages
        message = str(exc) if exc.http_status < 500 else exc.public_message
        body: Dict[str, Any] = {"error": message}
        if exc.details:
            body["details"] = exc.details
        return JSONResponse(status_code=exc.http_status, content=body)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(_request: Request, exc: Exception):
        logger.exception(f"Unhandled error: {exc}")
        return JSONResponse(status_code=500, content={"error": SolScopeError.public_message})

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "redis": cache.is_available(),
            "heliusConfigured": bool(ScopeConfig.get_helius_api_key()),
            "duneConfigured": bool(ScopeConfig.get_dune_api_key() and ScopeConfig.get_dune_query_id()),
        }

    @app.get("/api/analyze-wallet")
    async def analyze_wallet(address: Optional[str] = Query(default=None)):
        metrics = await analyzer.analyze_wallet(address)
        return {"metrics": metrics, "timestamp": int(time.time() * 1000), "status": "success"}

    @app.post("/api/analyze-trades")
    async def analyze_trades(request: AnalyzeTradesRequest):
        address = validate_wallet_address(request.walletAddress)
        execution = await dune_client.execute_query(address)
        return {
            "success": True,
            "data": {
                "execution_id": execution["execution_id"],
                "state": execution.get("state") or STATE_PENDING,
            },
        }

    @app.get("/api/task/{execution_id}")
    async def get_task(execution_id: str):
        data = await dune_client.get_execution_results(execution_id)
        if extract_rows(data):
            data["transformedData"] = transform_dune_data(data).to_dict()
        return {"success": True, "data": data}

    @app.post("/api/generate-insights")
    async def generate_insights(request: GenerateInsightsRequest):
        insights = await insight_generator.generate_insights(request.metrics, request.prompt)
        return {"insights": [insight.to_dict() for insight in insights]}

    @app.post("/api/analyze-trading")
    async def analyze_trading(payload: Dict[str, Any] = Body(...)):
        transformed = payload.get("transformedData", payload)
        analysis = await trading_analyzer.analyze_trading(transformed)
        return {"analysis": analysis.to_dict()}

    return app


def run(host: str = "0.0.0.0", port: Optional[int] = None):
    """Serve the API with uvicorn."""
    import uvicorn

    uvicorn.run(create_app(), host=host, port=port or ScopeConfig.get_port())
