"""Identifier conversion for generated Python code.

Examples:
  odata.nextLink    -> odata_next_link   (attribute / parameter)
  3.2               -> _3_2
  class             -> class_
  pet-store         -> PetStore          (class)
  Pets_ListByOwner  -> pets_list_by_owner
"""

import keyword
import re

# names that generated model modules import and must not be shadowed
RESERVED_CLASS_NAMES = {
    "Annotated", "Any", "BaseModel", "ConfigDict", "Enum", "Field",
    "Literal", "Union", "datetime",
}

# BaseModel attributes and module names a field must not shadow
RESERVED_FIELD_NAMES = {
    "construct", "copy", "datetime", "dict", "from_orm", "json", "model_computed_fields",
    "model_config", "model_construct", "model_copy", "model_dump",
    "model_dump_json", "model_extra", "model_fields", "model_fields_set",
    "model_json_schema", "model_parametrized_name", "model_post_init",
    "model_rebuild", "model_validate", "model_validate_json",
    "model_validate_strings", "parse_file", "parse_obj", "parse_raw",
    "schema", "schema_json", "update_forward_refs", "validate",
}


# names a generated client method body refers to
RESERVED_PARAMETER_NAMES = {"self", "models"}


def _camel_to_snake(name: str) -> str:
    """Convert camelCase or PascalCase to snake_case."""
    s1 = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    return re.sub(r"([a-z\d])([A-Z])", r"\1_\2", s1).lower()


def snake_case(name: str) -> str:
    name = _camel_to_snake(name)
    name = re.sub(r"[^a-z0-9_]", "_", name)
    name = re.sub(r"_+", "_", name)
    return name.strip("_")


def pascal_case(name: str) -> str:
    parts = [p for p in re.split(r"[^A-Za-z0-9]+", name) if p]
    return "".join(p[0].upper() + p[1:] for p in parts)


def _escape(name: str) -> str:
    if not name:
        return "_"
    if name[0].isdigit():
        name = f"_{name}"
    if keyword.iskeyword(name) or keyword.issoftkeyword(name):
        name = f"{name}_"
    return name


def identifier(name: str) -> str:
    """A snake_case Python identifier for a parameter, method or module."""
    return _escape(snake_case(name))


def field_name(name: str) -> str:
    """A snake_case identifier usable as a pydantic field name."""
    ident = identifier(name)
    if ident.startswith("_"):
        # leading underscores would make pydantic treat it as private
        ident = f"field{ident}"
    if ident in RESERVED_FIELD_NAMES:
        ident = f"{ident}_"
    return ident


def class_name(name: str) -> str:
    ident = _escape(pascal_case(name))
    if ident in RESERVED_CLASS_NAMES:
        ident = f"{ident}_"
    return ident


def constant_name(value: object) -> str:
    """An UPPER_SNAKE member name for an enum literal."""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    text = str(value)
    if isinstance(value, (int, float)):
        text = text.replace("-", "minus_").replace(".", "_")
    name = snake_case(text).upper()
    if not name:
        return "EMPTY"
    if name[0].isdigit():
        name = f"VALUE_{name}"
    return name


def unique(name: str, taken: set[str] | dict) -> str:
    """Return ``name`` or ``name2``, ``name3``... whichever is not taken."""
    if name not in taken:
        return name
    index = 2
    while f"{name}{index}" in taken:
        index += 1
    return f"{name}{index}"
