import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from dotenv import load_dotenv
load_dotenv()

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pymongo.database import Database
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import get_current_user
from .database import close_db, get_db, init_db, is_db_available
from .errors import ConfigurationError, CropScanError, InputError, SizeExceeded
from .models import AnalysisResult, AnalyzeCropRequest, ImageUploadResult, SaveScanRequest
from .services.diseases import get_all_diseases, get_disease, get_fallback_candidates, to_manual_result
from .services.history import list_scans, save_scan
from .services.imaging import ImageUploadOptions, process_image_upload
from .services.products import fetch_products_for_disease
from .services.vision import analyze_crop_image

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

CONFIGURATION_ERROR_MESSAGE = "Server configuration error. Please contact support."


def get_max_request_bytes() -> int:
    return int(float(os.getenv("MAX_REQUEST_MB", "10")) * 1024 * 1024)


app = FastAPI(title="CropScan API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup_event():
    init_db()


@app.on_event("shutdown")
def shutdown_event():
    close_db()


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    # full reason stays in the server log only
    logger.error("Configuration error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"error": CONFIGURATION_ERROR_MESSAGE})


@app.exception_handler(CropScanError)
async def crop_scan_error_handler(request: Request, exc: CropScanError):
    if isinstance(exc, InputError):
        logger.info("Rejected input on %s: %s", request.url.path, exc)
    else:
        logger.error("Request to %s failed: %s | %s", request.url.path, exc.error, exc.details)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    if request.url.path == "/api/analyze-crop" and first.get("type") == "missing" and tuple(first.get("loc", ())) == ("body",):
        error = "Image data is required"
    elif first.get("loc", ("body",))[0] == "body":
        error = "Invalid request body"
    else:
        error = "Invalid request parameters"
    details = first.get("msg", "")
    loc = [str(part) for part in first.get("loc", ())[1:]]
    if loc:
        details = f"{'.'.join(loc)}: {details}"
    logger.info("Rejected request on %s: %s", request.url.path, details)
    return JSONResponse(status_code=400, content={"error": error, "details": details})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    content = {"error": exc.detail if isinstance(exc.detail, str) else "Request failed"}
    if not isinstance(exc.detail, str):
        content["details"] = str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.get("/healthz")
def healthz():
    return {
        "status": "online",
        "service": "CropScan API",
        "database": "connected" if is_db_available() else "not configured",
    }


@app.get("/api/analyze-crop")
def analyze_crop_status():
    return {
        "status": "ok",
        "message": "Crop analysis API is operational",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.post("/api/analyze-crop", response_model=AnalysisResult)
def analyze_crop(req: AnalyzeCropRequest):
    if not req.imageBase64:
        raise InputError("Image data is required")
    if not req.imageBase64.startswith("data:image/"):
        raise InputError("Invalid image format. Must be a base64 data URL.")
    if len(req.imageBase64) > get_max_request_bytes():
        raise SizeExceeded("Image data exceeds the request size limit")

    try:
        result = analyze_crop_image(req.imageBase64)
    except CropScanError:
        raise
    except Exception as e:
        logger.exception("Unexpected error in /api/analyze-crop")
        return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(e)})

    logger.info(
        "Analysis completed: disease=%s confidence=%s crop=%s farm=%s",
        result.diseaseName, result.confidence, result.cropType, req.farmId or "none",
    )
    return result


@app.post("/api/upload_image", response_model=ImageUploadResult)
async def upload_image(file: UploadFile = File(...)):
    options = ImageUploadOptions(max_size_mb=float(os.getenv("MAX_REQUEST_MB", "10")))
    max_bytes = get_max_request_bytes()
    # never buffer more than one byte past the limit
    if file.size is not None and file.size > max_bytes:
        raise SizeExceeded(
            f"File size ({file.size / (1024 * 1024):.2f}MB) exceeds maximum allowed size ({options.max_size_mb}MB)"
        )
    content = await file.read(max_bytes + 1)
    return process_image_upload(content, file.filename or "upload", file.content_type or "", options)


@app.get("/api/diseases")
def list_diseases(db: Optional[Database] = Depends(get_db)):
    return {"diseases": [d.model_dump() for d in get_all_diseases(db)]}


@app.get("/api/diseases/fallback")
def fallback_diseases(db: Optional[Database] = Depends(get_db)):
    return {"candidates": [d.model_dump() for d in get_fallback_candidates(db)]}


@app.post("/api/diseases/{disease_id}/select", response_model=AnalysisResult)
def select_disease(disease_id: str, db: Optional[Database] = Depends(get_db)):
    disease = get_disease(db, disease_id)
    if disease is None:
        raise HTTPException(status_code=404, detail="disease_not_found")
    try:
        return to_manual_result(disease)
    except ValidationError as e:
        logger.warning("Reference disease %s cannot be used as a result: %s", disease_id, e)
        raise HTTPException(status_code=422, detail="incomplete_reference_entry")


@app.get("/api/products")
def products_for_disease(disease: str = Query(..., min_length=1), db: Optional[Database] = Depends(get_db)):
    return {"products": [p.model_dump() for p in fetch_products_for_disease(db, disease)]}


def _require_user(user: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not user:
        raise HTTPException(status_code=401, detail="authentication_required")
    return user


def _require_db(db: Optional[Database]) -> Database:
    if db is None:
        raise HTTPException(status_code=503, detail="database_unavailable")
    return db


@app.post("/api/scan_history")
def create_scan_history(
    item: SaveScanRequest,
    user: Optional[Dict[str, Any]] = Depends(get_current_user),
    db: Optional[Database] = Depends(get_db),
):
    user = _require_user(user)
    db = _require_db(db)
    saved = save_scan(db, user["id"], item.image, item.result, farm_id=item.farmId)
    return {"saved": saved.model_dump()}


@app.get("/api/scan_history")
def get_scan_history(
    limit: int = Query(100, ge=1, le=500),
    user: Optional[Dict[str, Any]] = Depends(get_current_user),
    db: Optional[Database] = Depends(get_db),
):
    user = _require_user(user)
    db = _require_db(db)
    return {"history": [entry.model_dump() for entry in list_scans(db, user["id"], limit=limit)]}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
