import json
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from ua_proxy.preload import render_preload_script
from ua_proxy.vars import CONFIG_API_PATH, PRELOAD_PATH

from .config_store import ConfigUpdate, config_store

router = APIRouter()
logger = logging.getLogger("uvicorn.error")


def _config_error(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"success": False, "message": message})


@router.get(PRELOAD_PATH)
async def preload_script():
    return Response(
        content=render_preload_script(),
        media_type="application/javascript",
        headers={"Cache-Control": "no-cache"},
    )


@router.post(CONFIG_API_PATH)
async def update_config(request: Request):
    """
    Replace the rewrite config.

    Body: ``{"processLinks": true|false}``. Anything else (malformed JSON, a
    missing field, a non-boolean value) is rejected with a 400 and the
    config is left as it was.
    """
    try:
        body = await request.json()
    except ValueError as exc:
        # JSONDecodeError for bad syntax, UnicodeDecodeError for non-UTF-8 bytes
        detail = exc.msg if isinstance(exc, json.JSONDecodeError) else "body is not valid UTF-8"
        logger.warning(f"[Config] Rejected malformed config body: {detail}")
        return _config_error(f"Invalid JSON payload: {detail}")

    try:
        update = ConfigUpdate.model_validate(body)
    except ValidationError as exc:
        logger.warning(f"[Config] Rejected invalid config: {exc.error_count()} error(s)")
        return _config_error(
            "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'body'}: {error['msg']}"
                for error in exc.errors()
            )
        )

    config = config_store().update(update)
    return {"success": True, "config": config.model_dump()}
