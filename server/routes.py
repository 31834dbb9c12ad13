"""FastAPI route definitions.

Endpoints:
- GET /          : Status, browser connection flag, endpoint map
- GET /test      : Scrape the test keyword once and return a sample job
- POST /scrape   : Multi-keyword scan with limit and optional rotation
- GET /close     : Close the browser session
- GET /metrics   : Prometheus metrics
"""
from __future__ import annotations

import json as _json
from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from jobscan.bootstrap import SCAN_REQUESTS_TOTAL, context_snapshot, get_context
from jobscan.errors import InvalidRequest, KeywordScrapeError
from jobscan.models import KEYWORDS_ERROR, REQUEST_EXAMPLE, ScanRequest

router = APIRouter()

ENDPOINTS = {
    "scrape": 'POST /scrape - { "keywords": ["n8n", "automation"], "limit": 30, "rotate": true }',
    "test": "GET /test - Quick check that scraping works",
    "close": "GET /close - Close browser",
    "metrics": "GET /metrics - Prometheus metrics",
}


@router.get("/")
async def status(ctx=Depends(get_context)):
    snap = context_snapshot(ctx)
    return {
        "status": "ok",
        "message": "Job listing scan API is running",
        "service": snap["app_name"],
        "library": "playwright",
        "feature": "persistent browser profile, challenge wait, keyword rotation",
        "browserConnected": snap["browser_connected"],
        "scanInProgress": snap["scan_in_progress"],
        "endpoints": ENDPOINTS,
    }


@router.get("/test")
async def test_scrape(ctx=Depends(get_context)):
    keyword = ctx.settings.test_keyword
    logger = ctx.logger.bind(component="api", route="test", keyword=keyword)
    logger.info("test_scrape_start")
    try:
        async with ctx.scan_lock:
            outcome = await ctx.orchestrator().scrape_keyword(keyword)
    except KeywordScrapeError as exc:
        logger.warning("test_scrape_failed", reason=exc.reason, error=exc.message)
        return JSONResponse({"success": False, "error": exc.message}, status_code=500)
    except Exception as exc:
        logger.error("test_scrape_error", error=str(exc), exc_info=True)
        return JSONResponse({"success": False, "error": str(exc)}, status_code=500)

    if outcome.failure is not None:
        return {"success": False, "error": "Challenge blocked", "message": outcome.failure.message}
    return {
        "success": True,
        "message": f"Scraper is working: {len(outcome.jobs)} job(s) found for '{keyword}'",
        "jobsFound": len(outcome.jobs),
        "sampleJob": outcome.jobs[0].to_dict() if outcome.jobs else None,
    }


async def _read_payload(request: Request) -> Any:
    body = await request.body()
    if not body:
        return {}
    try:
        return _json.loads(body)
    except ValueError as exc:
        raise InvalidRequest(KEYWORDS_ERROR, example=REQUEST_EXAMPLE) from exc


@router.post("/scrape")
async def scrape(request: Request, ctx=Depends(get_context)):
    scan_request = ScanRequest.from_payload(await _read_payload(request))
    limit = scan_request.effective_limit(ctx.settings.default_scan_limit)
    logger = ctx.logger.bind(component="api", route="scrape")
    logger.info("scrape_request", keywords=scan_request.keywords, limit=limit, rotation=scan_request.rotate)
    try:
        async with ctx.scan_lock:
            result = await ctx.coordinator().scan(scan_request, limit=limit)
    except Exception as exc:
        SCAN_REQUESTS_TOTAL.labels(status="error").inc()
        logger.error("scrape_failed", error=str(exc), exc_info=True)
        return JSONResponse({"success": False, "error": str(exc)}, status_code=500)
    SCAN_REQUESTS_TOTAL.labels(status="ok").inc()
    return result.to_response()


@router.get("/close")
async def close_browser(ctx=Depends(get_context)):
    await ctx.session.close()
    return {"success": True, "message": "Browser closed"}


@router.get("/metrics")
async def metrics(ctx=Depends(get_context)):
    if not ctx.settings.enable_metrics:
        return Response(status_code=404)
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
