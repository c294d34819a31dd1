# --- START OF FULL bridge/extension_interface.py ---

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.concurrency import run_in_threadpool
import json
from typing import Any, Dict, List

# Use the central logger
from tools.logger import log_info, log_error, log_warning
from services.artifact_pipeline import ArtifactPipeline, SERVICE_VERSION
from services.config_manager import ServiceSettings, load_settings
from services.errors import ArtifactExtractorError

AVAILABLE_ENDPOINTS = [
    "GET /api/status",
    "POST /api/set-project",
    "POST /api/submit",
    "POST /api/process-artifact",
    "POST /api/check-duplicate",
    "GET /api/stats",
    "POST /api/reset-stats",
    "POST /api/cleanup-backups",
    "GET /api/files",
    "GET /api/structure",
]


def _field(data: Dict[str, Any], *names: str, default: Any = None) -> Any:
    """First present key among camelCase / snake_case spellings."""
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return default


def _flag(value: Any, default: bool) -> bool:
    """JSON booleans, plus the string/number spellings extensions tend to send."""
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "y", "on")
    return bool(value)


async def _read_json(request: Request, endpoint_name: str) -> Dict[str, Any]:
    try:
        data = await request.json()
    except json.JSONDecodeError:
        log_error("extension_interface", endpoint_name, "Received non-JSON payload.")
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(data, dict):
        log_warning("extension_interface", endpoint_name, f"Received non-object payload: {type(data).__name__}")
        raise HTTPException(status_code=400, detail="JSON payload must be an object")
    return data


def _write_result_payload(result) -> Dict[str, Any]:
    payload = result.model_dump(mode="json")
    payload["success"] = True
    return payload


def create_extension_app(pipeline: ArtifactPipeline | None = None, settings: ServiceSettings | None = None) -> FastAPI:
    """Creates the FastAPI app the browser extension talks to."""
    if pipeline is None:
        pipeline = ArtifactPipeline(settings or load_settings())

    app = FastAPI(
        title="Artifact Extractor Local Service",
        description="Receives extracted code artifacts and writes them into the local project.",
        version=SERVICE_VERSION,
    )
    app.state.pipeline = pipeline

    # Extension content scripts post from arbitrary page origins
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        log_info("extension_interface", "request", f"{request.method} {request.url.path}")
        return await call_next(request)

    @app.exception_handler(ArtifactExtractorError)
    async def handle_extractor_error(request: Request, exc: ArtifactExtractorError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": str(exc), "type": type(exc).__name__},
        )

    @app.exception_handler(OSError)
    async def handle_filesystem_error(request: Request, exc: OSError):
        log_error("extension_interface", "handle_filesystem_error", f"{request.method} {request.url.path} failed: {exc}", exc)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": str(exc), "type": type(exc).__name__},
        )

    @app.exception_handler(404)
    async def handle_not_found(request: Request, exc: Exception):
        detail = getattr(exc, "detail", None)
        if detail and detail != "Not Found":
            return JSONResponse(status_code=404, content={"success": False, "error": detail})
        return JSONResponse(
            status_code=404,
            content={"success": False, "error": "Endpoint not found", "availableEndpoints": AVAILABLE_ENDPOINTS},
        )

    # --- API Endpoints ---
    @app.get("/api/status", tags=["Service"])
    def get_status():
        return JSONResponse(content=pipeline.status())

    @app.post("/api/set-project", tags=["Service"])
    async def set_project(request: Request):
        endpoint_name = "set_project"
        data = await _read_json(request, endpoint_name)
        project_root = _field(data, "projectRoot", "project_root")
        if not project_root or not isinstance(project_root, str):
            log_warning("extension_interface", endpoint_name, f"Invalid projectRoot in payload: {data}")
            raise HTTPException(status_code=400, detail="Project root path is required and must be a string")

        absolute_path = await run_in_threadpool(pipeline.set_project_root, project_root)
        return JSONResponse(content={
            "success": True,
            "projectRoot": absolute_path,
            "message": "Project root set successfully",
        })

    @app.post("/api/submit", tags=["Artifacts"])
    async def submit_artifact(request: Request):
        endpoint_name = "submit_artifact"
        data = await _read_json(request, endpoint_name)
        raw_content = _field(data, "rawContent", "raw_content", "content")
        if not isinstance(raw_content, str) or not raw_content:
            log_warning("extension_interface", endpoint_name, "Submission without rawContent.")
            raise HTTPException(status_code=400, detail="rawContent is required and must be a non-empty string")

        result = await run_in_threadpool(
            pipeline.submit_artifact,
            raw_content,
            _field(data, "suggestedName", "suggested_name", "filename", default=""),
            _field(data, "languageHint", "language_hint", "language"),
            overwrite=_flag(_field(data, "overwrite"), default=True),
        )
        return JSONResponse(content=_write_result_payload(result))

    @app.post("/api/process-artifact", tags=["Artifacts"])
    async def process_artifact(request: Request):
        """Message format used by the browser extension content script."""
        endpoint_name = "process_artifact"
        data = await _read_json(request, endpoint_name)
        message_type = data.get("type")
        payload = data.get("data") or {}

        if message_type != "ARTIFACT_DETECTED":
            log_warning("extension_interface", endpoint_name, f"Unsupported request type: {message_type}")
            raise HTTPException(status_code=400, detail=f"Unknown or unsupported request type: {message_type}")
        if not pipeline.project_root:
            raise HTTPException(status_code=400, detail="Project root not set. Please set project root first.")
        if not isinstance(payload, dict) or not isinstance(payload.get("content"), str) or not payload.get("content"):
            log_info("extension_interface", endpoint_name, f"No content provided for artifact: {payload.get('filePath') if isinstance(payload, dict) else None}")
            raise HTTPException(status_code=400, detail="Artifact content is required")

        suggested_name = _field(payload, "filePath", "originalFilename", default="")
        log_info("extension_interface", endpoint_name, f"Processing blob interception: {suggested_name}")
        result = await run_in_threadpool(pipeline.submit_artifact, payload["content"], suggested_name, payload.get("language"))
        return JSONResponse(content={
            "success": True,
            "method": "blob_interception",
            "filePath": result.relative_path,
            "absolutePath": result.absolute_path,
            "backupCreated": result.backup_created,
            "duplicate": result.duplicate,
            "message": "File written successfully via blob interception",
        })

    @app.post("/api/check-duplicate", tags=["Artifacts"])
    async def check_duplicate(request: Request):
        endpoint_name = "check_duplicate"
        data = await _read_json(request, endpoint_name)
        raw_content = _field(data, "rawContent", "raw_content", "content")
        if not isinstance(raw_content, str):
            raise HTTPException(status_code=400, detail="rawContent is required and must be a string")
        verdict = await run_in_threadpool(
            pipeline.is_duplicate,
            raw_content,
            _field(data, "suggestedName", "suggested_name", "filename", default=""),
            _field(data, "languageHint", "language_hint", "language"),
        )
        return JSONResponse(content=verdict)

    @app.get("/api/stats", tags=["Service"])
    def get_stats():
        counters = pipeline.query_stats()
        return JSONResponse(content={
            "projectRoot": pipeline.project_root,
            "totalProcessed": counters.total_processed,
            "successfulExtractions": counters.successful_extractions,
            "failedExtractions": counters.failed_extractions,
            "files": pipeline.writer.get_stats(),
        })

    @app.post("/api/reset-stats", tags=["Service"])
    async def reset_stats():
        await run_in_threadpool(pipeline.reset_stats)
        return JSONResponse(content={"success": True, "message": "Statistics reset"})

    @app.post("/api/cleanup-backups", tags=["Service"])
    async def cleanup_backups(request: Request):
        endpoint_name = "cleanup_backups"
        body = await request.body()
        data = await _read_json(request, endpoint_name) if body.strip() else {}
        max_age_days = _field(data, "maxAgeDays", "max_age_days")
        max_age_seconds = None
        if max_age_days is not None:
            try:
                max_age_seconds = float(max_age_days) * 24 * 60 * 60
            except (TypeError, ValueError):
                raise HTTPException(status_code=400, detail="maxAgeDays must be a number")
            if max_age_seconds < 0:
                raise HTTPException(status_code=400, detail="maxAgeDays must not be negative")
        report = await run_in_threadpool(pipeline.cleanup_backups, max_age_seconds)
        return JSONResponse(content={"success": True, **report.model_dump()})

    @app.get("/api/files", tags=["Project"])
    def list_files(directory: str = "", recursive: bool = False, extensions: str = ""):
        ext_list: List[str] | None = [e.strip() for e in extensions.split(",") if e.strip()] or None
        if not pipeline.project_root:
            raise HTTPException(status_code=400, detail="Project root not set. Please set project root first.")
        return JSONResponse(content={"files": pipeline.writer.list_files(directory, recursive=recursive, extensions=ext_list)})

    @app.get("/api/structure", tags=["Project"])
    def get_structure(maxDepth: int = 3):
        return JSONResponse(content={"projectRoot": pipeline.project_root, "structure": pipeline.writer.get_project_structure(maxDepth)})

    return app

# --- END OF FULL bridge/extension_interface.py ---
