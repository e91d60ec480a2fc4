"""FastAPI application."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.routes import analyze, feeds, health, reasoning, rebalances
from rebalancer.errors import AnalysisInProgress, ChainUnreachable, ExecutionFailed, PersistenceFailure

app = FastAPI(title="Setu Rebalancer", version="0.1.0")
app.include_router(health.router)
app.include_router(analyze.router)
app.include_router(reasoning.router)
app.include_router(rebalances.router)
app.include_router(feeds.router)


@app.exception_handler(ChainUnreachable)
async def _chain_unreachable(request: Request, exc: ChainUnreachable):
    return JSONResponse(status_code=503, content={"detail": f"Chain {exc.chain_id} unreachable"})


@app.exception_handler(PersistenceFailure)
async def _persistence_failure(request: Request, exc: PersistenceFailure):
    return JSONResponse(status_code=503, content={"detail": "Persistence unavailable"})


@app.exception_handler(AnalysisInProgress)
async def _in_progress(request: Request, exc: AnalysisInProgress):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ExecutionFailed)
async def _execution_failed(request: Request, exc: ExecutionFailed):
    return JSONResponse(status_code=502, content={"detail": str(exc)})
