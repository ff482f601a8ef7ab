"""FastAPI application entry point for the Hub tagging bot.

Endpoints:
- POST /webhook     Hub discussion webhook receiver
- POST /simulate    Drive a synthetic comment through the same pipeline
- GET  /health      Readiness of each subsystem
- GET  /operations  Recent operation records
- GET  /metrics     Prometheus metrics
- GET  /            Service metadata

The webhook caller only ever learns accepted / ignored / rejected. What
happens to the tags afterwards is visible through /operations.

Every collaborator is built in ``create_app``'s lifespan and kept on
``app.state``; nothing is module-global, so each app instance (and each
test) owns its own ledger and worker pool.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import Response

from src.tagbot import __version__
from src.tagbot.agent.adapter import TaggingAgent
from src.tagbot.config import TaggerSettings, get_settings
from src.tagbot.hub.client import HubClient
from src.tagbot.ledger.store import OperationLedger
from src.tagbot.log_config import configure_logging, redact_secret
from src.tagbot.metrics import METRICS_CONTENT_TYPE, TaggerMetrics
from src.tagbot.processor import TagProcessor
from src.tagbot.scheduler import QueueFullError, TaskScheduler
from src.tagbot.schemas import (
    HealthResponse,
    OperationsResponse,
    ServiceInfo,
    SimulateRequest,
    WebhookResponse,
)
from src.tagbot.webhook.handler import SECRET_HEADER, AuthError, ParseError, WebhookHandler
from src.tagbot.webhook.models import Classification, DiscussionEvent


logger = structlog.get_logger(__name__)

SERVICE_NAME = "Hub Tagging Bot"


def _log_configuration(settings: TaggerSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info(
        "Tagging bot configuration",
        webhook_secret=redact_secret(settings.webhook_secret),
        hf_token=redact_secret(settings.hf_token),
        hub_base_url=settings.hub_base_url,
        llm_url=settings.llm_url,
        llm_model=settings.llm_model,
        worker_count=settings.worker_count,
        queue_max_size=settings.queue_max_size,
        ledger_max_records=settings.ledger_max_records,
        tag_vocabulary=settings.tag_vocabulary,
    )


def create_app(
    settings: Optional[TaggerSettings] = None,
    agent: Optional[TaggingAgent] = None,
    hub_client: Optional[HubClient] = None,
    metrics: Optional[TaggerMetrics] = None,
    configure_logs: bool = True,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Configuration; read from the environment when omitted.
        agent: Tagging agent; built from settings when omitted.
        hub_client: Hub client for the default agent.
        metrics: Prometheus metrics; a private registry when omitted.
        configure_logs: Whether startup configures structlog.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings if settings is not None else get_settings()
        if configure_logs:
            configure_logging(cfg.log_level, cfg.log_json)

        logger.info("Tagging bot starting up...")
        _log_configuration(cfg)

        if hub_client is not None:
            client = hub_client
        elif agent is not None:
            client = agent.hub_client
        else:
            client = HubClient(token=cfg.hf_token, base_url=cfg.hub_base_url)
        tagging_agent = agent or TaggingAgent(
            hub_client=client,
            llm_url=cfg.llm_url,
            model_name=cfg.llm_model,
            api_key=cfg.llm_api_key,
            timeout=cfg.llm_timeout_seconds,
            max_turns=cfg.agent_max_turns,
            health_timeout=cfg.health_check_timeout_seconds,
        )
        app_metrics = metrics or TaggerMetrics()
        ledger = OperationLedger(max_records=cfg.ledger_max_records)
        processor = TagProcessor(
            ledger=ledger,
            agent=tagging_agent,
            metrics=app_metrics,
            vocabulary=cfg.tag_vocabulary,
        )
        scheduler = TaskScheduler(
            processor=processor,
            worker_count=cfg.worker_count,
            queue_max_size=cfg.queue_max_size,
            metrics=app_metrics,
        )

        app.state.settings = cfg
        app.state.webhook_handler = WebhookHandler(secret=cfg.webhook_secret)
        app.state.agent = tagging_agent
        app.state.ledger = ledger
        app.state.metrics = app_metrics
        app.state.scheduler = scheduler

        scheduler.start()
        logger.info("Tagging bot started successfully")

        yield

        logger.info("Tagging bot shutting down...")
        await scheduler.stop()
        await client.close()
        logger.info("Tagging bot shutdown complete")

    app = FastAPI(
        title=SERVICE_NAME,
        description="Adds tags to Hub repositories from discussion comments",
        version=__version__,
        lifespan=lifespan,
    )

    def _schedule(
        request: Request,
        event: DiscussionEvent,
        classification: Classification,
        simulated: bool = False,
    ) -> WebhookResponse:
        metrics_: TaggerMetrics = request.app.state.metrics

        if not classification.accepted:
            metrics_.record_webhook("ignored")
            logger.info(
                "Ignored webhook event",
                action=event.action,
                scope=event.scope,
                reason=classification.reason,
            )
            return WebhookResponse(
                status="ignored", reason=classification.reason, simulated=simulated
            )

        try:
            operation_id = request.app.state.scheduler.submit(event)
        except QueueFullError as e:
            metrics_.record_webhook("rejected")
            raise HTTPException(status_code=503, detail=str(e))

        metrics_.record_webhook("accepted")
        return WebhookResponse(
            status="accepted",
            operation_id=operation_id,
            repo=event.repo_name,
            discussion=event.discussion_num,
            simulated=simulated,
        )

    @app.post("/webhook", response_model=WebhookResponse, response_model_exclude_none=True)
    async def webhook(request: Request):
        """Hub webhook receiver.

        Returns 401 on a bad or missing secret, 400 on a malformed body,
        503 when the work queue is full, and 200 accepted/ignored otherwise.
        """
        handler: WebhookHandler = request.app.state.webhook_handler
        metrics_: TaggerMetrics = request.app.state.metrics

        try:
            handler.authenticate(request.headers.get(SECRET_HEADER))
        except AuthError as e:
            metrics_.record_webhook("unauthorized")
            raise HTTPException(status_code=401, detail=str(e))

        body = await request.body()
        try:
            event = handler.parse_event(body)
        except ParseError as e:
            # Dropped: the Hub gets a 400 and no retry is requested.
            metrics_.record_webhook("malformed")
            logger.warning("Dropped malformed webhook body", error=e.message, body_size=len(body))
            raise HTTPException(status_code=400, detail=e.message)

        return _schedule(request, event, handler.classify(event))

    @app.post("/simulate", response_model=WebhookResponse, response_model_exclude_none=True)
    async def simulate(request: Request, payload: SimulateRequest):
        """Drive a synthetic comment through parse, classify and schedule."""
        handler: WebhookHandler = request.app.state.webhook_handler
        try:
            event = handler.parse_event(payload.to_payload())
        except ParseError as e:
            raise HTTPException(status_code=400, detail=e.message)
        return _schedule(request, event, handler.classify(event), simulated=True)

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request):
        """Report which subsystems are configured and reachable."""
        state = request.app.state
        agent_: TaggingAgent = state.agent

        secret_ok = state.webhook_handler.secret_configured
        token_ok = agent_.hub_client.has_token
        available = agent_.is_available
        reachable = await agent_.health_check() if available else False
        running = state.scheduler.is_running

        healthy = secret_ok and available and reachable and running
        return HealthResponse(
            status="healthy" if healthy else "degraded",
            webhook_secret_configured=secret_ok,
            hub_token_configured=token_ok,
            agent_available=available,
            agent_reachable=reachable,
            workers_running=running,
            queue_depth=state.scheduler.queue_depth,
        )

    @app.get("/operations", response_model=OperationsResponse)
    async def operations(
        request: Request,
        limit: Optional[int] = Query(default=None, ge=1, le=1000),
    ):
        """Return the most recent operation records, oldest first."""
        ledger: OperationLedger = request.app.state.ledger
        window = limit or request.app.state.settings.operations_window
        return OperationsResponse(
            total_operations=ledger.total_appended,
            retained_operations=ledger.size,
            status_counts=ledger.count_by_status(),
            operations=ledger.recent(window),
        )

    @app.get("/metrics")
    async def metrics_endpoint(request: Request):
        """Prometheus metrics endpoint."""
        return Response(request.app.state.metrics.render(), media_type=METRICS_CONTENT_TYPE)

    @app.get("/", response_model=ServiceInfo)
    async def root():
        """Static service metadata."""
        return ServiceInfo(
            name=SERVICE_NAME,
            version=__version__,
            description="Adds tags suggested in discussion comments to Hub repositories",
            endpoints={
                "webhook": "POST /webhook",
                "simulate": "POST /simulate",
                "health": "GET /health",
                "operations": "GET /operations",
                "metrics": "GET /metrics",
            },
        )

    return app


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        create_app(dev_settings),
        host=dev_settings.host,
        port=dev_settings.port,
    )
