"""Subprocess worker running one Kinnie program.

Reads a single JSON object `{"code": "...", "settings": {...}}` from stdin,
runs it with a fresh `Interpreter`, and writes the run-result dict as JSON
to stdout. The parent (`subprocess_runner`) enforces timeouts and rlimits.
"""

import json
import sys

from backend.kinnie.interpreter import Interpreter


def main() -> int:
    raw = sys.stdin.read()
    try:
        payload = json.loads(raw)
        code = payload.get("code", "")
        settings = payload.get("settings") or {}
    except (ValueError, AttributeError) as e:
        print(json.dumps({"output": "", "warnings": [], "errors": {"code": "BAD_PAYLOAD", "message": str(e)}, "declarations": None, "stats": None}))
        return 1

    # never recurse into another worker
    settings.pop("use_subprocess", None)
    result = Interpreter().run(code, settings)
    print(json.dumps(result))
    return 0 if result.get("errors") is None else 1


if __name__ == "__main__":
    sys.exit(main())
