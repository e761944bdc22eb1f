"""{{variable}} template rendering and validation.

Shared by agreement templates, communication templates and email bodies.
"""

import logging
import re
from datetime import date, datetime

from coliving_platform.domain.enums import TemplateVariableType
from coliving_platform.domain.errors import ValidationError

logger = logging.getLogger(__name__)

VARIABLE_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
PLACEHOLDER_RE = re.compile(r"\{\{([a-zA-Z_][a-zA-Z0-9_]*)\}\}")

MIN_TEMPLATE_LENGTH = 50

# Sections a lease is expected to mention somewhere in its body
RECOMMENDED_SECTIONS = ("tenant", "property", "rent")


def extract_variables(content: str) -> list[str]:
    """Return unique placeholder names in order of first appearance."""
    seen: list[str] = []
    for match in PLACEHOLDER_RE.finditer(content or ""):
        name = match.group(1)
        if name not in seen:
            seen.append(name)
    return seen


def render(content: str, values: dict) -> str:
    """Replace {{name}} with str(value) for every supplied name.

    Placeholders without a supplied value are left as-is.
    """
    values = values or {}

    def substitute(match):
        value = values.get(match.group(1))
        return match.group(0) if value is None else str(value)

    # One pass, so placeholders inside supplied values stay literal
    return PLACEHOLDER_RE.sub(substitute, content or "")


def _var_get(variable, key: str, default=None):
    if isinstance(variable, dict):
        return variable.get(key, default)
    return getattr(variable, key, default)


def validate_template(content: str, variables: list) -> list[str]:
    """Validate template content against its declared variables.

    Raises ValidationError listing every problem. Returns warnings that
    don't block saving the template.
    """
    errors: list[str] = []
    warnings: list[str] = []

    if not content or len(content.strip()) < MIN_TEMPLATE_LENGTH:
        errors.append(f"Template content must be at least {MIN_TEMPLATE_LENGTH} characters")

    names: list[str] = []
    for variable in variables or []:
        name = _var_get(variable, "name") or ""
        if not VARIABLE_NAME_RE.match(name):
            errors.append(f"Invalid variable name: '{name}'")
        if name in names:
            errors.append(f"Duplicate variable name: '{name}'")
        names.append(name)

        var_type = _var_get(variable, "type")
        var_type = getattr(var_type, "value", var_type)
        if var_type == TemplateVariableType.SELECT.value and not _var_get(variable, "select_options"):
            errors.append(f"Select variable '{name}' must define options")

    for placeholder in extract_variables(content or ""):
        if placeholder not in names:
            errors.append(f"Undefined variable in template: '{placeholder}'")

    lowered = (content or "").lower()
    for section in RECOMMENDED_SECTIONS:
        if section not in lowered:
            warnings.append(f"Template may be missing a {section} section")
    for warning in warnings:
        logger.warning("Template validation: %s", warning)

    if errors:
        raise ValidationError("Template validation failed", errors)
    return warnings


def _parse_iso_date(value) -> bool:
    if isinstance(value, (date, datetime)):
        return True
    try:
        datetime.fromisoformat(str(value))
        return True
    except ValueError:
        return False


def apply_defaults(variables: list, values: dict) -> dict:
    """Return values with declared defaults filled in for missing names."""
    merged = dict(values or {})
    for variable in variables or []:
        name = _var_get(variable, "name")
        default = _var_get(variable, "default_value")
        if name and merged.get(name) in (None, "") and default not in (None, ""):
            merged[name] = default
    return merged


def validate_values(variables: list, values: dict) -> dict:
    """Check values against variable declarations.

    Returns the values with defaults applied. Raises ValidationError listing
    every failing variable.
    """
    merged = apply_defaults(variables, values)
    errors: list[str] = []

    for variable in variables or []:
        name = _var_get(variable, "name")
        label = _var_get(variable, "label") or name
        value = merged.get(name)

        if value is None or value == "":
            if _var_get(variable, "required", False):
                errors.append(f"{label} is required")
            continue

        var_type = _var_get(variable, "type", TemplateVariableType.TEXT.value)
        var_type = getattr(var_type, "value", var_type)

        if var_type == TemplateVariableType.NUMBER.value:
            if isinstance(value, bool):
                errors.append(f"{label} must be a number")
                continue
            try:
                float(value)
            except (TypeError, ValueError):
                errors.append(f"{label} must be a number")
                continue
        elif var_type == TemplateVariableType.DATE.value:
            if not _parse_iso_date(value):
                errors.append(f"{label} must be a valid date")
                continue
        elif var_type == TemplateVariableType.BOOLEAN.value:
            if not isinstance(value, bool) and str(value).lower() not in ("true", "false"):
                errors.append(f"{label} must be true or false")
                continue
        elif var_type == TemplateVariableType.SELECT.value:
            options = _var_get(variable, "select_options") or []
            if str(value) not in [str(o) for o in options]:
                errors.append(f"{label} must be one of: {', '.join(str(o) for o in options)}")
                continue

        pattern = _var_get(variable, "validation")
        if pattern:
            try:
                if not re.fullmatch(pattern, str(value)):
                    errors.append(f"{label} has an invalid format")
            except re.error:
                logger.warning("Ignoring invalid validation pattern for %s: %s", name, pattern)

    if errors:
        raise ValidationError("Invalid template values", errors)
    return merged
