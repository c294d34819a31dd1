# --- START OF FULL main.py ---
"""
Runs the Artifact Extractor local service.

    python main.py [--port 3030] [--host 127.0.0.1] [--project-root ~/code/my-app]

Priority for each setting: command line > environment (.env) > config/settings.yaml > default.
"""
import argparse
import asyncio
import signal
import sys
import traceback

from dotenv import load_dotenv
load_dotenv() # .env must be in os.environ before the logger reads DEBUG_MODE / LOG_DIR

import uvicorn

from tools.logger import DEBUG_MODE, log_info, log_error, log_warning
from services.artifact_pipeline import ArtifactPipeline, SERVICE_VERSION
from services.config_manager import ServiceSettings, load_settings
from services.errors import ArtifactExtractorError
from services.scheduler_service import start_scheduler, shutdown_scheduler
from bridge.extension_interface import create_extension_app


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Artifact Extractor local service")
    parser.add_argument("--port", type=int, help="Listen port (overrides PORT and settings.yaml)")
    parser.add_argument("--host", type=str, help="Bind address (overrides EXTRACTOR_HOST and settings.yaml)")
    parser.add_argument("--project-root", type=str, help="Project directory to write artifacts into at startup")
    return parser.parse_args(argv)


def build_service(args: argparse.Namespace) -> tuple[ServiceSettings, ArtifactPipeline]:
    fn_name = "build_service"
    settings = load_settings()
    cli_overrides = {key: value for key, value in (
        ("port", args.port), ("host", args.host), ("project_root", args.project_root),
    ) if value}
    if cli_overrides:
        settings = ServiceSettings(**{**settings.model_dump(), **cli_overrides})
        log_info("main", fn_name, f"Command line overrides: {sorted(cli_overrides)}")

    pipeline = ArtifactPipeline(settings)
    if settings.project_root:
        try:
            pipeline.set_project_root(settings.project_root)
        except ArtifactExtractorError as root_err:
            # Not fatal: the extension can still send /api/set-project
            log_error("main", fn_name, f"Startup project root rejected: {root_err}")
    return settings, pipeline


def _install_signal_handlers(server: uvicorn.Server):
    loop = asyncio.get_running_loop()

    def _request_exit(sig: signal.Signals):
        log_warning("main", "signal", f"Received {sig.name}, stopping server...")
        server.should_exit = True

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_exit, sig)
        except NotImplementedError: # Windows event loops
            signal.signal(sig, lambda signum, _frame: _request_exit(signal.Signals(signum)))


async def serve(settings: ServiceSettings, pipeline: ArtifactPipeline):
    fn_name = "serve"
    if start_scheduler(pipeline):
        log_info("main", fn_name, "Backup cleanup scheduler running.")

    log_level = "debug" if DEBUG_MODE else "info"
    server = uvicorn.Server(uvicorn.Config(
        create_extension_app(pipeline),
        host=settings.host, port=settings.port,
        access_log=False, log_level=log_level, lifespan="on",
    ))
    _install_signal_handlers(server)

    log_info("main", fn_name, f"Artifact Extractor v{SERVICE_VERSION} on http://{settings.host}:{settings.port}")
    log_info("main", fn_name, f"Project root: {pipeline.project_root or 'not set (waiting for /api/set-project)'}")
    try:
        await server.serve()
    finally:
        shutdown_scheduler()
        stats = pipeline.query_stats()
        log_info("main", fn_name, f"Server stopped after {stats.total_processed} artifact(s) ({stats.failed_extractions} failed).")


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        settings, pipeline = build_service(args)
    except Exception as setup_err:
        log_error("main", "main", f"Service setup failed: {setup_err}", setup_err)
        return 1

    try:
        asyncio.run(serve(settings, pipeline))
    except KeyboardInterrupt:
        log_warning("main", "main", "Interrupted.")
    except SystemExit as exit_err:
        # uvicorn exits this way when it cannot bind
        log_error("main", "main", f"Server exited with code {exit_err.code} (port {settings.port} in use?).")
        return exit_err.code if isinstance(exit_err.code, int) else 1
    except Exception as run_err:
        log_error("main", "main", f"Unhandled error while serving: {run_err}\n{traceback.format_exc()}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

# --- END OF FULL main.py ---
