"""
Tool registry for Workmate.

Every provider declares its tools once, at import time, as a list of
:class:`~workmate.core.schema.ToolDeclaration` objects.  The registry is pure data: the planner
reads declarations from it, the executors map declared names to handler coroutines, and the
helpers below validate argument bags against a declaration before anything is dispatched.
"""

import logging
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
)

from workmate.core.errors import ToolValidationError
from workmate.core.schema import (
    ToolDeclaration,
    ToolParameter,
)

logger = logging.getLogger(__name__)

TOOL_REGISTRY: Dict[str, Dict[str, ToolDeclaration]] = {}
"""Global registry: provider name -> tool name -> declaration."""

_TRUE_WORDS = {"true", "yes", "y", "1", "on"}
_FALSE_WORDS = {"false", "no", "n", "0", "off", ""}


def register_tools(provider: str, declarations: Iterable[ToolDeclaration]) -> None:
    """
    Register the declarations of *provider*.

    Tool names must be unique within a provider's namespace and every declaration must name
    *provider* as its owner.

    Raises
    ------
    ValueError
        If a name is registered twice or a declaration belongs to another provider.
    """
    namespace = TOOL_REGISTRY.setdefault(provider, {})
    for decl in declarations:
        if decl.provider != provider:
            raise ValueError(
                f"Tool '{decl.name}' declares provider '{decl.provider}', not '{provider}'."
            )
        if decl.name in namespace:
            raise ValueError(f"Tool '{decl.name}' is already registered for '{provider}'.")
        logger.debug("Registering tool '%s' for provider '%s'", decl.name, provider)
        namespace[decl.name] = decl


def get_declarations(provider: str) -> List[ToolDeclaration]:
    """Return every declaration of *provider* in registration order."""
    if provider not in TOOL_REGISTRY:
        raise KeyError(f"Provider '{provider}' has no registered tools.")
    return list(TOOL_REGISTRY[provider].values())


def get_declaration(provider: str, name: str) -> ToolDeclaration | None:
    """Look up one declaration; ``None`` when unknown."""
    return TOOL_REGISTRY.get(provider, {}).get(name)


# ---------------------------------------------------------------------------
# Argument validation
# ---------------------------------------------------------------------------
def is_empty(value: Any) -> bool:
    """True for ``None``, blank strings and empty collections."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def missing_required_fields(
    declaration: ToolDeclaration, args: Mapping[str, Any] | None
) -> List[str]:
    """Names of required parameters that are absent or empty in *args*."""
    args = args or {}
    return [name for name in declaration.required_fields() if is_empty(args.get(name))]


def _coerce(param: ToolParameter, value: Any) -> Any:
    """Convert *value* to the declared type of *param* or raise ``ValueError``."""
    if param.type == "string":
        if isinstance(value, (dict, list)):
            raise ValueError("expected a string")
        return value if isinstance(value, str) else str(value)

    if param.type in ("number", "integer"):
        if isinstance(value, bool):
            raise ValueError("expected a number")
        number = float(value) if isinstance(value, str) else value
        if not isinstance(number, (int, float)):
            raise ValueError("expected a number")
        if param.type == "integer" or float(number).is_integer():
            return int(number)
        return float(number)

    if param.type == "boolean":
        if isinstance(value, bool):
            return value
        word = str(value).strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        raise ValueError("expected true or false")

    if param.type == "array":
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        if isinstance(value, (list, tuple)):
            return list(value)
        raise ValueError("expected a list")

    return value


def validate_arguments(
    declaration: ToolDeclaration, args: Mapping[str, Any] | None
) -> Dict[str, Any]:
    """
    Return a cleaned copy of *args* for *declaration*.

    Defaults are filled in, values are coerced to their declared types, enumerations are checked
    and undeclared keys are dropped.

    Raises
    ------
    ToolValidationError
        If a required field is missing/empty or a value has the wrong shape.
    """
    args = dict(args or {})
    cleaned: Dict[str, Any] = {}
    problems: List[str] = []
    bad_fields: List[str] = []

    for param in declaration.parameters:
        value = args.pop(param.name, None)
        if is_empty(value):
            if param.default is not None:
                cleaned[param.name] = param.default
            continue
        try:
            value = _coerce(param, value)
        except (TypeError, ValueError) as exc:
            problems.append(f"'{param.name}' {exc}")
            bad_fields.append(param.name)
            continue
        if param.enum and value not in param.enum:
            allowed = ", ".join(str(v) for v in param.enum)
            problems.append(f"'{param.name}' must be one of: {allowed}")
            bad_fields.append(param.name)
            continue
        cleaned[param.name] = value

    if args:
        logger.debug("Dropping undeclared arguments for '%s': %s", declaration.name, sorted(args))

    missing = missing_required_fields(declaration, cleaned)
    if missing:
        problems.insert(0, "missing required field(s): " + ", ".join(missing))

    if problems:
        raise ToolValidationError(
            f"Invalid arguments for '{declaration.name}': " + "; ".join(problems),
            fields=missing + bad_fields,
            provider=declaration.provider,
        )
    return cleaned
