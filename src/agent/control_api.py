"""
src/agent/control_api.py

Purpose: HTTP control surface of the Suricata sidecar agent
Context: Operators manage custom rules and query Suricata through this API;
         other components may also push EVE events here for relaying to the
         central collector.

Routes:
- GET    /                       liveness text
- GET    /health                 service status
- POST   /eve_json_log           relay EVE object/array upstream
- GET    /rule                   list rules
- GET    /rule/{id}              one rule
- POST   /rule                   append a rule (reloads Suricata)
- DELETE /rule/{id}              delete a rule, including identical duplicates
- GET    /suricata/status        uptime
- GET    /suricata/statistics    ruleset-stats
- GET    /suricata/interface     iface-stat <NETWORK_INTERFACE>
- POST   /suricata/rules/reload  reload-rules

JSON responses use the envelope {success, message?, data?}.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from agent_config import AgentConfig
from agent_errors import AgentError, BadRequestError, ControlBridgeError
from api_models import RuleRequest, RulesList, envelope
from eve_forwarder import EventForwarder
from rules_store import RulesStore
from suricata_control import SuricataControl

logger = logging.getLogger(__name__)

SERVICE_NAME = "suricata-sidecar"
SERVICE_VERSION = "0.1.0"

CORS_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]
CORS_HEADERS = ["Content-Type", "Authorization", "Accept", "Origin", "Referer", "User-Agent"]


def get_config(request: Request) -> AgentConfig:
    return request.app.state.config


def get_rules_store(request: Request) -> RulesStore:
    return request.app.state.rules_store


def get_control(request: Request) -> SuricataControl:
    return request.app.state.suricata_control


def get_forwarder(request: Request) -> EventForwarder:
    return request.app.state.forwarder


async def reload_after_change(config: AgentConfig, control: SuricataControl):
    """Ask Suricata to pick up the edited rules file; failures only logged"""
    if not config.auto_reload_rules or config.skip_suricata:
        return
    try:
        await control.reload_rules()
    except ControlBridgeError as e:
        logger.warning(f"Rules file changed but Suricata reload failed: {e.message}")


# Rules
rule_router = APIRouter(prefix="/rule", tags=["rules"])


@rule_router.get("")
def list_rules(store: RulesStore = Depends(get_rules_store)):
    rules = store.list()
    return envelope(True, data=RulesList(rules=rules, count=len(rules)))


@rule_router.get("/{rule_id}")
def get_rule(rule_id: str, store: RulesStore = Depends(get_rules_store)):
    return envelope(True, data=store.get(rule_id))


@rule_router.post("", status_code=201)
async def create_rule(
    payload: RuleRequest,
    config: AgentConfig = Depends(get_config),
    store: RulesStore = Depends(get_rules_store),
    control: SuricataControl = Depends(get_control)
):
    rule_id = await run_in_threadpool(store.append, payload.rule_content)
    logger.info(f"Created rule {rule_id}")

    await reload_after_change(config, control)

    return JSONResponse(
        status_code=201,
        content=envelope(True, "Rule added and applied successfully")
    )


@rule_router.delete("/{rule_id}")
async def delete_rule(
    rule_id: str,
    config: AgentConfig = Depends(get_config),
    store: RulesStore = Depends(get_rules_store),
    control: SuricataControl = Depends(get_control)
):
    """
    Delete a rule by ID

    Identical rule lines share an ID, so every copy is removed.
    """
    await run_in_threadpool(store.delete, rule_id)

    await reload_after_change(config, control)

    return envelope(True, "Rule deleted and changes applied successfully")


# Suricata control
suricata_router = APIRouter(prefix="/suricata", tags=["suricata"])


@suricata_router.get("/status", response_class=PlainTextResponse)
async def suricata_status(control: SuricataControl = Depends(get_control)):
    return await control.status()


@suricata_router.get("/statistics", response_class=PlainTextResponse)
async def suricata_statistics(control: SuricataControl = Depends(get_control)):
    return await control.rule_statistics()


@suricata_router.get("/interface", response_class=PlainTextResponse)
async def suricata_interface(control: SuricataControl = Depends(get_control)):
    return await control.interface_statistics()


@suricata_router.post("/rules/reload")
async def suricata_reload(control: SuricataControl = Depends(get_control)):
    await control.reload_rules()
    return envelope(True, "Suricata rules reloaded successfully")


# Event relay
eve_router = APIRouter(tags=["events"])


@eve_router.post("/eve_json_log")
async def relay_eve_json_log(
    request: Request,
    forwarder: EventForwarder = Depends(get_forwarder)
):
    """
    Relay EVE events to the central collector

    Accepts a single JSON object or an array of objects. Returns the
    collector's reply (or an array of replies for several events).
    """
    body = await request.body()

    try:
        data = json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        logger.error(f"Invalid JSON body: {e}")
        raise BadRequestError("Invalid JSON body")

    if isinstance(data, list):
        logger.info(f"Received EVE event array ({len(data)} items)")
        items = data
    elif isinstance(data, dict):
        logger.info("Received single EVE event")
        items = [data]
    else:
        raise BadRequestError("Unsupported JSON body: expected an object or an array")

    results = await forwarder.relay(items)
    return JSONResponse(content=results[0] if len(results) == 1 else results)


def create_app(
    config: AgentConfig,
    rules_store: Optional[RulesStore] = None,
    control: Optional[SuricataControl] = None,
    forwarder: Optional[EventForwarder] = None,
    lifespan=None
) -> FastAPI:
    """
    Build the FastAPI application

    Args:
        config: Loaded agent configuration
        rules_store: Rules store (built from config if omitted)
        control: Suricata control bridge (built from config if omitted)
        forwarder: Event forwarder (built from config if omitted)
        lifespan: Optional lifespan context manager for background tasks
    """
    app = FastAPI(
        title="Suricata Sidecar Agent",
        description="Rule management, Suricata control and EVE event relay",
        version=SERVICE_VERSION,
        lifespan=lifespan
    )

    app.state.config = config
    app.state.rules_store = rules_store or RulesStore(config.rules_file_path)
    app.state.suricata_control = control or SuricataControl(
        interface=config.network_interface,
        container=config.suricata_container
    )
    app.state.forwarder = forwarder or EventForwarder(config.central_api_url)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.cors_origin],
        allow_credentials=True,
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
    )

    @app.get("/", response_class=PlainTextResponse)
    async def root():
        return "Friede sei mit euch!"

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION
        }

    app.include_router(eve_router)
    app.include_router(rule_router)
    app.include_router(suricata_router)

    @app.exception_handler(AgentError)
    async def agent_error_handler(request: Request, exc: AgentError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=envelope(False, exc.message)
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Malformed request to {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=400,
            content=envelope(False, "Malformed request body")
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=envelope(False, str(exc.detail)),
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=envelope(False, "Internal server error")
        )

    return app
