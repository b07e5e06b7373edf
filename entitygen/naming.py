"""Names of generated classes, modules, methods and attributes.

Pattern (entity class ``DeviceType``, field ``userId``):
  - class name     -> upper_first(class_name or spec name)
  - entity module  -> device_type
  - getter         -> get_user_id
  - accessor       -> get_device_type
  - putter         -> put_device_type
  - by-id field    -> _device_type_by_id

Examples:
  @entity_spec(name="user")                        -> User, user.py
  @entity_spec(name="msg", class_name="message")   -> Message, message.py
  field recipientsToReadList                       -> get_recipients_to_read_list
  IEntityStoreReader                               -> i_entity_store_reader.py
"""

from __future__ import annotations

import re

# Locals used by generated method bodies; properties with these names get a
# trailing underscore when bound to a local variable.
_RESERVED_LOCALS = frozenset({
    "self", "entity", "entity_id", "dirty", "cached",
    "reader", "writer", "set", "tuple", "isinstance",
})


def upper_first(text: str) -> str:
    """Upper-case the first character and keep the rest as-is."""
    return text[:1].upper() + text[1:]


def lower_first(text: str) -> str:
    """Lower-case the first character and keep the rest as-is."""
    return text[:1].lower() + text[1:]


def camel_to_snake(name: str) -> str:
    """Convert camelCase or PascalCase to snake_case."""
    s1 = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    return re.sub(r"([a-z\d])([A-Z])", r"\1_\2", s1).lower()


def generated_class_name(spec_name: str, class_name: str | None = None) -> str:
    """Effective generated class name for a spec."""
    return upper_first(class_name or spec_name)


def module_name_for(class_name: str) -> str:
    """Module (file stem) holding a generated class."""
    return camel_to_snake(class_name)


def getter_name(field_name: str) -> str:
    return f"get_{camel_to_snake(field_name)}"


def accessor_name(class_name: str) -> str:
    """Store and repository method reading one entity type by id."""
    return f"get_{camel_to_snake(class_name)}"


def putter_name(class_name: str) -> str:
    """Store and repository method writing one entity type."""
    return f"put_{camel_to_snake(class_name)}"


def by_id_field_name(class_name: str) -> str:
    return f"_{camel_to_snake(class_name)}_by_id"


def attribute_name(field_name: str) -> str:
    """Private attribute backing a property on a generated entity."""
    return f"_{field_name}"


def local_name(field_name: str) -> str:
    """Local variable bound to a property inside generated method bodies."""
    if field_name in _RESERVED_LOCALS:
        return f"{field_name}_"
    return field_name
