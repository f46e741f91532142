import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import Callable, Iterator, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import AuthService
from .config import Settings, load_settings
from .database import Credential, init_db, make_engine, make_session_factory, session_scope, utcnow
from .errors import AuthError, DdlogError, NotFoundError, ValidationError
from .export import FORMATS, MEDIA_TYPES, export_filename, tasks_to_csv, tasks_to_pdf
from .heatmap import heatmap
from .logging_setup import setup_logging
from .schemas import (
    AuthStatusOut,
    Envelope,
    HeatmapDayOut,
    LoginOut,
    MessageOut,
    PinIn,
    SetupOut,
    TaskIn,
    TaskOut,
    TaskUpdate,
    UserOut,
)
from .tasks import TaskStore

logger = logging.getLogger(__name__)

EXPORT_DEFAULT_DAYS = 7

router = APIRouter(prefix="/api")


# Dependencies

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_clock(request: Request) -> Callable[[], datetime]:
    return request.app.state.clock


def get_session(request: Request) -> Iterator[Session]:
    yield from session_scope(request.app.state.session_factory)


def get_auth_service(
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    clock=Depends(get_clock),
) -> AuthService:
    return AuthService(session, settings, clock=clock)


def get_task_store(session: Session = Depends(get_session), clock=Depends(get_clock)) -> TaskStore:
    return TaskStore(session, clock=clock)


def get_current_user(
    authorization: Optional[str] = Header(None),
    auth: AuthService = Depends(get_auth_service),
) -> Credential:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthError("Access token required")
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise AuthError("Access token required")
    return auth.verify_token(token)


# Service endpoints

@router.get("/health")
def health(clock=Depends(get_clock)):
    return {"status": "ok", "message": "ddLOG server is running", "timestamp": clock().isoformat()}


@router.get("/version")
def version(settings: Settings = Depends(get_settings)):
    return {"version": settings.app_version}


# Auth endpoints

@router.get("/auth/status", response_model=Envelope[AuthStatusOut])
def auth_status(auth: AuthService = Depends(get_auth_service)):
    return Envelope[AuthStatusOut](data=AuthStatusOut(**auth.status()))


@router.post("/auth/setup", response_model=Envelope[SetupOut], status_code=status.HTTP_201_CREATED)
def auth_setup(body: PinIn, auth: AuthService = Depends(get_auth_service)):
    credential = auth.setup(body.pin)
    return Envelope[SetupOut](data=SetupOut(user_id=credential.id))


@router.post("/auth/login", response_model=Envelope[LoginOut])
def auth_login(body: PinIn, auth: AuthService = Depends(get_auth_service)):
    result = auth.login(body.pin)
    return Envelope[LoginOut](
        data=LoginOut(token=result["token"], user=UserOut.model_validate(result["user"]))
    )


# Tasks CRUD
# Fixed paths (/today, /heatmap, /export) are registered before /tasks/{task_id}.

@router.get("/tasks", response_model=Envelope[List[TaskOut]])
def list_tasks(
    on_date: Optional[date] = Query(None, alias="date"),
    user: Credential = Depends(get_current_user),
    store: TaskStore = Depends(get_task_store),
):
    tasks = store.list(user.id, on_date)
    return Envelope[List[TaskOut]](data=[TaskOut.model_validate(t) for t in tasks])


@router.get("/tasks/today", response_model=Envelope[List[TaskOut]])
def today_tasks(user: Credential = Depends(get_current_user), store: TaskStore = Depends(get_task_store)):
    tasks = store.today(user.id)
    return Envelope[List[TaskOut]](data=[TaskOut.model_validate(t) for t in tasks])


@router.get("/tasks/heatmap", response_model=Envelope[List[HeatmapDayOut]])
def task_heatmap(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    user: Credential = Depends(get_current_user),
    session: Session = Depends(get_session),
    clock=Depends(get_clock),
):
    days = heatmap(session, user.id, start_date, end_date, today=clock().date())
    return Envelope[List[HeatmapDayOut]](data=[HeatmapDayOut.model_validate(d) for d in days])


@router.get("/tasks/export/{fmt}")
def export_tasks(
    fmt: str,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    user: Credential = Depends(get_current_user),
    store: TaskStore = Depends(get_task_store),
    clock=Depends(get_clock),
):
    if fmt not in FORMATS:
        raise ValidationError("Invalid format. Use csv or pdf")

    today = clock().date()
    start = start_date or today - timedelta(days=EXPORT_DEFAULT_DAYS)
    end = end_date or today
    tasks = store.in_range(user.id, start, end)

    if fmt == "csv":
        content = tasks_to_csv(tasks)
    else:
        content = tasks_to_pdf(tasks, start, end, generated_at=clock())
    logger.info("Exported %d task(s) as %s for %s..%s", len(tasks), fmt, start, end)

    filename = export_filename(fmt, start, end)
    return Response(
        content=content,
        media_type=MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/tasks", response_model=Envelope[TaskOut], status_code=status.HTTP_201_CREATED)
def create_task(body: TaskIn, user: Credential = Depends(get_current_user), store: TaskStore = Depends(get_task_store)):
    task = store.create(
        user.id,
        body.name,
        description=body.description,
        category=body.category,
        reminder_time=body.reminder_time,
    )
    return Envelope[TaskOut](data=TaskOut.model_validate(task))


@router.get("/tasks/{task_id}", response_model=Envelope[TaskOut])
def get_task(task_id: str, user: Credential = Depends(get_current_user), store: TaskStore = Depends(get_task_store)):
    task = store.get(user.id, task_id)
    if task is None:
        raise NotFoundError("Task not found")
    return Envelope[TaskOut](data=TaskOut.model_validate(task))


@router.api_route("/tasks/{task_id}", methods=["PUT", "PATCH"], response_model=Envelope[TaskOut])
def update_task(
    task_id: str,
    body: TaskUpdate,
    user: Credential = Depends(get_current_user),
    store: TaskStore = Depends(get_task_store),
):
    task = store.update(user.id, task_id, body.model_dump(exclude_unset=True))
    return Envelope[TaskOut](data=TaskOut.model_validate(task))


@router.delete("/tasks/{task_id}", response_model=MessageOut)
def delete_task(task_id: str, user: Credential = Depends(get_current_user), store: TaskStore = Depends(get_task_store)):
    if not store.delete(user.id, task_id):
        raise NotFoundError("Task not found")
    return MessageOut(message="Task deleted successfully")


# Error envelope

def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message, **extra})


async def ddlog_error_handler(request: Request, exc: DdlogError):
    return _error(exc.status_code, exc.message, **exc.extra)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    return _error(status.HTTP_400_BAD_REQUEST, message)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == status.HTTP_404_NOT_FOUND and request.url.path.startswith("/api/"):
        message = "API route not found"
    return _error(exc.status_code, message)


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


# App setup

def create_app(settings: Optional[Settings] = None, clock: Callable[[], datetime] = utcnow) -> FastAPI:
    settings = settings or load_settings()
    engine = make_engine(settings.database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(engine)
        yield
        engine.dispose()

    app = FastAPI(title="ddLOG", version=settings.app_version, lifespan=lifespan)
    app.state.settings = settings
    app.state.clock = clock
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(DdlogError, ddlog_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(router)
    return app


def run() -> None:
    import uvicorn

    settings = load_settings()
    setup_logging(level=settings.log_level, log_dir=settings.log_dir)
    logger.info("Starting ddLOG on %s:%s", settings.host, settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
