"""
Request-template overrides rendered with Jinja2.

A template renders to JSON text that becomes the backend argument object,
replacing the built-in builder for its route (only PutRecord accepts one).
Templates run in a sandboxed environment; compiled templates are cached by
source hash so repeated requests skip the parse phase.

Template context:
    stream_name  path segment {name}
    body         parsed JSON request body (dict, {} when absent)
    params       collected request parameters

Filters: ``b64encode`` (same encoding the built-in builders use for Data)
plus Jinja's own ``tojson``.
"""

import hashlib
import json
import threading
from collections import OrderedDict
from typing import Any

from jinja2 import StrictUndefined, Template, TemplateError, TemplateSyntaxError
from jinja2.sandbox import SandboxedEnvironment

from streamgate.core.encoding import encode_data


class TemplateRenderError(ValueError):
    """Raised when a request template cannot be compiled or rendered to a JSON object."""

    pass


_ENV: SandboxedEnvironment | None = None

_CACHE_MAX_SIZE = 64
_template_cache: OrderedDict[str, Template] = OrderedDict()
_cache_lock = threading.Lock()


def _get_env() -> SandboxedEnvironment:
    global _ENV
    if _ENV is None:
        _ENV = SandboxedEnvironment(autoescape=False, undefined=StrictUndefined)
        _ENV.filters["b64encode"] = encode_data
    return _ENV


def compile_template(source: str) -> Template:
    """Return a compiled ``Template`` from cache or compile & cache it."""
    key = hashlib.md5(source.encode(), usedforsecurity=False).hexdigest()
    with _cache_lock:
        tpl = _template_cache.get(key)
        if tpl is not None:
            _template_cache.move_to_end(key)
            return tpl
    try:
        tpl = _get_env().from_string(source)
    except TemplateSyntaxError as e:
        raise TemplateRenderError(f"Request template syntax error: {e}") from e
    with _cache_lock:
        _template_cache[key] = tpl
        if len(_template_cache) > _CACHE_MAX_SIZE:
            _template_cache.popitem(last=False)
    return tpl


def render_request_template(source: str, context: dict[str, Any]) -> dict[str, Any]:
    """Render *source* with *context* and parse the output as a JSON object."""
    tpl = compile_template(source)
    try:
        rendered = tpl.render(**context)
    except TemplateError as e:
        raise TemplateRenderError(f"Request template render error: {e}") from e
    try:
        out = json.loads(rendered)
    except json.JSONDecodeError as e:
        preview = rendered[:200] + "..." if len(rendered) > 200 else rendered
        raise TemplateRenderError(
            f"Request template did not render valid JSON: {e}. Output preview: {preview}"
        ) from e
    if not isinstance(out, dict):
        raise TemplateRenderError("Request template must render a JSON object")
    return out
