# main.py: mounts routers, wires role resolution, exposes health

import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import load_config

# Try to load config, but don't exit - create app anyway to show error
_config_error = None
try:
    CFG = load_config()
except Exception as e:
    import sys
    import traceback
    _config_error = str(e)
    print("=" * 80, file=sys.stderr)
    print("FATAL: Failed to load configuration", file=sys.stderr)
    print("=" * 80, file=sys.stderr)
    print(f"Error: {e}", file=sys.stderr)
    print(file=sys.stderr)
    print("Full traceback:", file=sys.stderr)
    traceback.print_exc(file=sys.stderr)
    print("=" * 80, file=sys.stderr)
    print("Required variables: SUPABASE_URL, SUPABASE_KEY", file=sys.stderr)
    print("=" * 80, file=sys.stderr)
    CFG = {}

logging.basicConfig(
    level=CFG.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("license_hub")

from api.middleware.roles import RoleResolutionMiddleware  # noqa: E402
from core.rbac import configure_resolver, configure_session_registry  # noqa: E402

if CFG:
    configure_resolver(timeout_seconds=CFG["ROLE_STORE_TIMEOUT_MS"] / 1000.0)
    configure_session_registry(max_sessions=CFG["ROLE_SESSION_MAX"])

app = FastAPI(
    title="RAYN License Hub",
    version="0.1.0",
    description="Role resolution and access control for the license hub dashboard.",
)

# CORS: permissive for now; lock down later.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RoleResolutionMiddleware)

# Track router mount failures so 404s aren't mysteries.
_router_failures = []
_mounted = []


def _mount(module_name: str):
    try:
        mod = __import__(module_name, fromlist=["router"])
        app.include_router(mod.router)
        _mounted.append(module_name)
        logger.info(f"[routers] mounted {module_name}")
    except Exception as e:
        msg = repr(e)
        _router_failures.append({"router": module_name, "error": msg})
        logger.warning(f"[routers] failed to mount '{module_name}': {msg}")


_mount("api.roles")
_mount("api.admin.role_preview")
_mount("api.debug")


@app.get("/health")
async def health():
    """Liveness probe plus router mount status."""
    if _config_error:
        return {
            "status": "degraded",
            "error": "configuration_failed",
            "message": _config_error,
            "mounted": _mounted,
            "failures": _router_failures,
        }
    return {
        "status": "ok",
        "title": app.title,
        "version": app.version,
        "mounted": _mounted,
        "failures": _router_failures,
    }
