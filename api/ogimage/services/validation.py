"""Query parameter validation and cache-key normalization.

``validate_params`` builds the ``RenderRequest`` the pipeline renders; the
model's validators enforce every constraint. ``normalize_params`` produces the
lossy, lower-cased view used only for fingerprinting. Both are pure functions
of the incoming mapping.
"""

from typing import Dict, Iterable, Mapping, Tuple

from pydantic import ValidationError as PydanticValidationError

from ..models.exceptions import ValidationError
from ..models.schemas import (
    TEXT_FIELDS,
    Font,
    OutputFormat,
    ParamError,
    RenderRequest,
    TemplateKind,
    Theme,
)

# Read by the cache engine, never part of the fingerprinted parameter set
CACHE_VERSION_PARAMS = ("v", "cache_version")

DEFAULTS = {
    "template": TemplateKind.DEFAULT.value,
    "theme": Theme.LIGHT.value,
    "font": Font.INTER.value,
    "format": OutputFormat.PNG.value,
}


def first_values(items: Iterable[Tuple[str, str]]) -> Dict[str, str]:
    """Collapse repeated query keys, keeping the first occurrence."""
    params: Dict[str, str] = {}
    for key, value in items:
        params.setdefault(key, value)
    return params


def _query_error(exc: PydanticValidationError) -> ValidationError:
    first = exc.errors()[0]
    error = first.get("ctx", {}).get("error")
    if isinstance(error, ParamError):
        return ValidationError(error.param, error.message)
    field = ".".join(str(part) for part in first.get("loc", ())) or "query"
    return ValidationError(field, f"Invalid {field} parameter")


def validate_params(raw: Mapping[str, str]) -> RenderRequest:
    """Validate caller parameters.

    Raises:
        ValidationError: on the first violated constraint, free-text fields first.
    """
    try:
        return RenderRequest(
            fields={name: raw[name] for name in TEXT_FIELDS if name in raw},
            template=raw.get("template"),
            theme=raw.get("theme"),
            font=raw.get("font"),
            format=raw.get("format"),
            template_id=raw.get("templateId"),
            font_url=raw.get("fontUrl"),
            fallback=raw.get("fallback"),
        )
    except PydanticValidationError as e:
        raise _query_error(e)


def normalize_params(raw: Mapping[str, str]) -> Dict[str, str]:
    """Lower-case and trim every value and fill defaults. Fingerprinting only."""
    normalized: Dict[str, str] = {}
    for key, value in raw.items():
        if key in CACHE_VERSION_PARAMS:
            continue
        normalized[key] = value.strip().lower()

    for key, default in DEFAULTS.items():
        if not normalized.get(key):
            normalized[key] = default
    return normalized
