from __future__ import annotations

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

import numpy as np

from cpirun.errors import CallConstructionError, PluginCallError

JSONScalar = bool | int | float | str | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

# plugins and their fixtures compare requests byte for byte
_SEPARATORS = (",", ":")


@dataclass(frozen=True)
class CallContext:
    """Request-scoped identifiers sent along with every call.

    Attributes:
        director_id: Identifier of the orchestrator instance making the call. Goes
            over the wire as `director_uuid`.
    """

    director_id: str

    def to_payload(self) -> dict[str, JSONValue]:
        return {"director_uuid": self.director_id}


@dataclass(frozen=True)
class CallError:
    """Failure reported by the plugin inside an otherwise valid response."""

    message: str
    type: str = ""
    ok_to_retry: bool = False


@dataclass(frozen=True)
class CallOutput:
    result: JSONValue = None
    error: CallError | None = None
    log: str = ""

    def raise_for_error(self, method: str) -> JSONValue:
        """Raise `PluginCallError` if the plugin reported a failure, otherwise return
        the result."""
        if self.error is not None:
            raise PluginCallError(
                method,
                self.error.type,
                self.error.message,
                ok_to_retry=self.error.ok_to_retry,
            )
        return self.result


def sanitize_arguments(arguments: Sequence[Any]) -> list[JSONValue]:
    """Convert call arguments into plain JSON values, failing early on anything that
    JSON can't carry."""
    try:
        return [
            _convert_json_value(arg, path=f"arguments[{idx}]")
            for idx, arg in enumerate(arguments)
        ]
    except RecursionError as exc:
        raise CallConstructionError("Arguments are nested too deeply") from exc


def request_to_dict(
    method: str, arguments: Sequence[Any], context: CallContext
) -> dict[str, JSONValue]:
    """Build the request payload. Key order is part of the wire format."""
    if not isinstance(method, str) or not method:
        raise CallConstructionError(f"method must be a non-empty string: {method!r}")
    return {
        "method": method,
        "arguments": sanitize_arguments(arguments),
        "context": context.to_payload(),
    }


def encode_request(
    method: str, arguments: Sequence[Any], context: CallContext
) -> bytes:
    """Serialize a call into the compact JSON bytes written to the plugin's stdin."""
    payload = request_to_dict(method, arguments, context)
    try:
        text = json.dumps(
            payload, separators=_SEPARATORS, ensure_ascii=False, allow_nan=False
        )
    except (TypeError, ValueError, RecursionError) as exc:
        raise CallConstructionError(
            f"[cpi:{method}] cannot encode request: {exc}"
        ) from exc
    return text.encode("utf-8")


def decode_output(stdout: bytes | str) -> CallOutput:
    """Parse what a plugin printed on stdout into a `CallOutput`.

    Raises:
        ValueError: If the output isn't a JSON object of the expected shape. The call
            runner turns this into a transport error.
    """
    try:
        raw = json.loads(stdout)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError(f"output is not valid JSON: {exc}") from exc
    except RecursionError as exc:
        raise ValueError("output is nested too deeply") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"expected a JSON object, got {type(raw).__name__}")

    log_text = raw.get("log")
    if log_text is None:
        log_text = ""
    elif not isinstance(log_text, str):
        raise ValueError(f"'log' must be a string, got {type(log_text).__name__}")

    return CallOutput(
        result=raw.get("result"),
        error=_decode_error(raw.get("error")),
        log=log_text,
    )


def _decode_error(data: Any) -> CallError | None:
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValueError(f"'error' must be an object, got {type(data).__name__}")
    message = data.get("message")
    if not isinstance(message, str):
        raise ValueError("'error' is missing a string 'message'")
    error_type = data.get("type") or ""
    if not isinstance(error_type, str):
        raise ValueError("'error.type' must be a string")
    ok_to_retry = data.get("ok_to_retry")
    if ok_to_retry is None:
        ok_to_retry = False
    elif not isinstance(ok_to_retry, bool):
        raise ValueError("'error.ok_to_retry' must be a boolean")
    return CallError(message=message, type=error_type, ok_to_retry=ok_to_retry)


def _convert_json_value(
    value: Any, path: str, seen: frozenset[int] = frozenset()
) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise CallConstructionError(f"Non-finite float at {path}: {value}")
        return value
    if isinstance(value, np.generic):
        return _convert_json_value(value.item(), path=path)
    if isinstance(value, np.ndarray):
        return _convert_json_value(value.tolist(), path=path)
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (dict, list, tuple)):
        if id(value) in seen:
            raise CallConstructionError(f"Circular reference at {path}")
        seen = seen | {id(value)}
    if isinstance(value, dict):
        result: dict[str, JSONValue] = {}
        for key, val in value.items():
            key_str = str(key)
            if key_str in result:
                raise CallConstructionError(f"Duplicate key at {path}: {key_str!r}")
            result[key_str] = _convert_json_value(
                val, path=f"{path}.{key_str}", seen=seen
            )
        return result
    if isinstance(value, (list, tuple)):
        return [
            _convert_json_value(v, path=f"{path}[{idx}]", seen=seen)
            for idx, v in enumerate(value)
        ]
    raise CallConstructionError(
        f"Unsupported argument type at {path}: {type(value).__name__}"
    )
