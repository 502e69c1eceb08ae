"""FastAPI application entrypoints for Kinnie.

Each `/run` request constructs a fresh `Interpreter` so no run state is ever
shared between requests. Client-supplied limits are clamped to the server's
defaults before they reach the interpreter.
"""

import logging
import time
from typing import Any, Dict, Literal, Optional

from fastapi import FastAPI
from pydantic import BaseModel

from ..kinnie.interpreter import Interpreter

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

app = FastAPI(title="Kinnie API", version="0.1")

# limits a client may lower but never raise
CAPPED_LIMITS = (
    "max_tokens",
    "max_lexeme_chars",
    "max_steps",
    "max_loop",
    "max_call_depth",
    "max_scope_depth",
    "max_output_chars",
)


def _cap_settings(settings: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Enforce server-side safe caps for runtime tunables.

    The ceiling for every limit is taken from a fresh `Interpreter()`'s
    defaults; the client's values are applied up to those ceilings.
    Returns a dict suitable for passing directly into `Interpreter.run`.
    """
    defaults = Interpreter()
    safe: Dict[str, Any] = {key: getattr(defaults, key) for key in CAPPED_LIMITS}
    safe["max_time_s"] = defaults.max_time_s
    safe["number_format"] = defaults.number_format
    safe["emit_declarations"] = defaults.emit_declarations
    if not settings:
        return safe
    caps = dict(safe)
    for key in CAPPED_LIMITS:
        if key in settings:
            caps[key] = max(1, min(int(settings[key]), safe[key]))
    if "max_time_s" in settings:
        caps["max_time_s"] = max(0.01, min(float(settings["max_time_s"]), safe["max_time_s"]))
    if settings.get("number_format") in ("fraction", "integer"):
        caps["number_format"] = settings["number_format"]
    caps["emit_declarations"] = bool(settings.get("emit_declarations", safe["emit_declarations"]))
    if settings.get("use_subprocess"):
        caps["use_subprocess"] = True
        caps["timeout_s"] = min(int(settings.get("timeout_s", 2)), 5)
    return caps


class RunSettings(BaseModel):
    """Optional per-run tunables; limits are clamped server-side."""

    max_tokens: Optional[int] = None
    max_lexeme_chars: Optional[int] = None
    max_steps: Optional[int] = None
    max_time_s: Optional[float] = None
    max_loop: Optional[int] = None
    max_call_depth: Optional[int] = None
    max_scope_depth: Optional[int] = None
    max_output_chars: Optional[int] = None
    number_format: Optional[Literal["fraction", "integer"]] = None
    emit_declarations: Optional[bool] = None
    use_subprocess: Optional[bool] = None
    timeout_s: Optional[int] = None


class RunRequest(BaseModel):
    """Pydantic model for the `/run` request body.

    Fields:
        code: Kinnie source text.
        settings: optional runtime tunables; will be capped server-side.
    """
    code: str
    settings: Optional[RunSettings] = None


@app.post("/run")
async def run_code(req: RunRequest):
    """Run one Kinnie program and return the interpreter's result dict.

    Any unexpected exception is turned into a SERVER_ERROR payload so
    callers always receive the same JSON shape.
    """
    start = time.time()
    try:
        requested = req.settings.model_dump(exclude_none=True) if req.settings else {}
        capped = _cap_settings(requested)
        result = Interpreter().run(req.code, settings=capped)
    except Exception as e:
        logger.exception("run failed")
        return {
            "output": "",
            "warnings": [],
            "errors": {"code": "SERVER_ERROR", "message": str(e)},
            "declarations": None,
            "stats": None,
            "duration_ms": int((time.time() - start) * 1000),
        }
    result["duration_ms"] = int((time.time() - start) * 1000)
    return result
