from typing import Annotated

from entitygen.annotations import EntityId, entity_spec


@entity_spec(name="User")
class UserSpec:
    user_id: Annotated[int, EntityId]
    name: str
