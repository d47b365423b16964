from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from .core.config import Settings, get_settings
from .errors import ChartSignalError, InvalidUpload
from .store.history import HistoryJournal
from .store.uploads import ImageIngestor
from .store.users import CredentialStore
from .vision.adapters import InferenceAdapter, build_adapter
from .vision.pipeline import ChartAnalyzer
from .vision.risk import compute_risk
from .vision.schema import AnalysisRecord, RiskPlan, RiskSettings, SignalPlan

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


class LoginReq(BaseModel):
    email: str
    name: Optional[str] = None
    picture: Optional[str] = None


class SettingsReq(BaseModel):
    userId: str
    geminiKey: Optional[str] = None
    riskSettings: Optional[RiskSettings] = None


class RiskReq(BaseModel):
    userId: str
    result: SignalPlan


def _users(request: Request) -> CredentialStore:
    return request.app.state.users


@router.post("/auth/login")
async def login(req: LoginReq, request: Request):
    user = await _users(request).upsert_user_by_email(req.email, req.name, req.picture)
    return {"success": True, "user": user.model_dump(exclude={"apiKey"})}


@router.post("/settings")
async def save_settings(req: SettingsReq, request: Request):
    await _users(request).update_settings(req.userId, api_key=req.geminiKey, risk_settings=req.riskSettings)
    return {"success": True, "message": "Settings saved"}


@router.get("/settings/{user_id}")
async def get_user_settings(user_id: str, request: Request):
    api_key, risk = await _users(request).get_settings(user_id)
    return {"geminiKey": api_key, "riskSettings": risk.model_dump()}


@router.get("/history/{user_id}", response_model=List[AnalysisRecord])
async def history(user_id: str, request: Request):
    return await request.app.state.journal.list(user_id)


@router.post("/analyze", response_model=AnalysisRecord)
async def analyze(
    request: Request,
    userId: str = Form(...),
    mode: str = Form("swing"),
    image: UploadFile | None = File(None),
):
    if image is None:
        raise InvalidUpload("No image uploaded")
    max_mb = request.app.state.settings.max_upload_mb
    if image.size is not None and image.size > max_mb * 1024 * 1024:
        raise InvalidUpload(f"Image is larger than {max_mb} MB")
    raw = await image.read()
    analyzer: ChartAnalyzer = request.app.state.analyzer
    return await analyzer.analyze(userId, mode, raw, image.content_type, image.filename)


@router.post("/risk", response_model=RiskPlan)
async def risk(req: RiskReq, request: Request):
    _key, settings = await _users(request).get_settings(req.userId)
    return compute_risk(req.result, settings)


async def _pipeline_error(request: Request, exc: ChartSignalError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": ChartSignalError.hint, "stage": "unknown", "code": "InternalError"},
    )


def create_app(settings: Settings | None = None, adapter: InferenceAdapter | None = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    upload_dir = settings.upload_dir.expanduser().resolve()
    upload_dir.mkdir(parents=True, exist_ok=True)
    settings.data_dir.expanduser().resolve().mkdir(parents=True, exist_ok=True)

    app = FastAPI(title="ChartSignal API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    users = CredentialStore(settings.users_file)
    journal = HistoryJournal(settings.history_file)
    ingestor = ImageIngestor(
        upload_dir,
        public_base_url=settings.public_base_url,
        max_bytes=settings.max_upload_mb * 1024 * 1024,
    )
    app.state.settings = settings
    app.state.users = users
    app.state.journal = journal
    app.state.analyzer = ChartAnalyzer(users, ingestor, adapter or build_adapter(settings), journal)

    app.add_exception_handler(ChartSignalError, _pipeline_error)
    app.add_exception_handler(Exception, _unexpected_error)
    app.include_router(router)
    app.mount("/uploads", StaticFiles(directory=str(upload_dir)), name="uploads")

    @app.get("/health")
    def health():
        return {"ok": True}

    logger.info(
        "ChartSignal API ready (provider=%s, data=%s, uploads=%s)",
        settings.vision_provider,
        settings.data_dir,
        upload_dir,
    )
    return app


app = create_app()
