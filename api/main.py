import sys, os, uvicorn, logging
from contextlib import asynccontextmanager
from typing import Any, Optional, Protocol, cast

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from config.settings import settings as app_settings
from repositories.negotiation_store import NegotiationStore
from repositories.reference_data_repo import ReferenceDataRepository
from services.backend_scheduler import BackendScheduler
from services.email_dispatch_service import EmailDispatchService
from services.email_service import EmailService
from services.order_service import OrderService
from services.reply_simulation import ReplySimulator
from services.rfq_workflow import RFQWorkflow
from utils.exceptions import NotFoundError, PreconditionFailedError, ValidationError
from api.routers import orders, quotes, reference, rfqs, simulation

LOG_DIR = app_settings.log_dir
os.makedirs(LOG_DIR, exist_ok=True)
logging.basicConfig(level=getattr(logging, app_settings.log_level.upper(), logging.INFO),
                    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
                    handlers=[logging.StreamHandler(), logging.FileHandler(os.path.join(LOG_DIR, "hexa.log"))])
logger = logging.getLogger(__name__)


class HexaAppState(Protocol):
    settings: Any
    store: Optional[NegotiationStore]
    reference: Optional[ReferenceDataRepository]
    backend_scheduler: Optional[BackendScheduler]
    workflow: Optional[RFQWorkflow]
    order_service: Optional[OrderService]
    simulator: Optional[ReplySimulator]


def build_services(settings) -> dict:
    """Wire the negotiation services for one application instance."""

    scheduler = BackendScheduler(settings)
    store = NegotiationStore(settings)
    reference = ReferenceDataRepository.from_default(
        default_contact_email=settings.supplier_sim_email
    )
    dispatcher = EmailDispatchService(settings, EmailService(settings))
    workflow = RFQWorkflow(store, reference, dispatcher, scheduler, settings=settings)
    simulator = None
    if settings.simulation_enabled:
        simulator = ReplySimulator(workflow, scheduler, settings=settings)
        workflow.attach_simulator(simulator)
    return {
        "settings": settings,
        "store": store,
        "reference": reference,
        "backend_scheduler": scheduler,
        "workflow": workflow,
        "order_service": workflow.order_service,
        "simulator": simulator,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("API starting up...")
    state = cast(HexaAppState, app.state)
    try:
        for name, service in build_services(app_settings).items():
            setattr(state, name, service)
        logger.info("Negotiation services initialized successfully.")
    except Exception as e:
        logger.critical(f"FATAL: System initialization failed: {e}", exc_info=True)
        state.store = None
        state.reference = None
        state.backend_scheduler = None
        state.workflow = None
        state.order_service = None
        state.simulator = None
    yield
    scheduler = getattr(state, "backend_scheduler", None)
    if scheduler is not None:
        try:
            scheduler.stop()
        except Exception:  # pragma: no cover - defensive shutdown
            logger.exception("Failed to stop BackendScheduler during shutdown")
    for name in ("simulator", "order_service", "workflow", "backend_scheduler", "reference", "store"):
        if hasattr(state, name):
            setattr(state, name, None)
    logger.info("API shutting down.")

app = FastAPI(title="Hexa Procurement Negotiation API", version="1.0", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_credentials=True, allow_methods=["*"], allow_headers=["*"])


@app.exception_handler(ValidationError)
async def _validation_error(_request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(NotFoundError)
async def _not_found(_request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(PreconditionFailedError)
async def _precondition_failed(_request: Request, exc: PreconditionFailedError):
    return JSONResponse(status_code=409, content={"error": str(exc)})


app.include_router(rfqs.router)
app.include_router(quotes.router)
app.include_router(orders.router)
app.include_router(simulation.router)
app.include_router(reference.router)

@app.get("/", tags=["General"])
def read_root(): return {"message": "Welcome to the Hexa Procurement Negotiation API"}

@app.get("/health", tags=["General"])
def health(request: Request):
    scheduler = getattr(request.app.state, "backend_scheduler", None)
    return {
        "status": "ok" if getattr(request.app.state, "workflow", None) is not None else "degraded",
        "scheduler_running": bool(scheduler and scheduler.running),
    }

if __name__ == "__main__":
    uvicorn.run("api.main:app", host="0.0.0.0", port=8000, reload=True)
