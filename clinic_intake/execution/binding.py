"""
Field Binding.

Maps a step id to the SessionData field its accepted input populates,
optionally normalizing the submitted value on the way in.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, MutableMapping, Optional, Union


@dataclass(frozen=True)
class FieldBinding:
    field: str
    transform: Optional[Callable[[str], Any]] = None

    def value_for(self, raw: str) -> Any:
        return self.transform(raw) if self.transform else raw


class FieldBindingTable:
    """
    Pure lookup from step id to bound field.

    Entries are either a field name or a FieldBinding with a transform.
    """

    def __init__(self, bindings: Mapping[str, Union[str, FieldBinding]]):
        self._bindings: Dict[str, FieldBinding] = {
            step_id: binding if isinstance(binding, FieldBinding) else FieldBinding(binding)
            for step_id, binding in bindings.items()
        }

    def field_for(self, step_id: str) -> Optional[str]:
        binding = self._bindings.get(step_id)
        return binding.field if binding else None

    def bind(self, step_id: str, raw: str, data: MutableMapping[str, Any]) -> Optional[str]:
        """
        Writes the (normalized) value into data. Returns the field written, if any.
        """
        binding = self._bindings.get(step_id)
        if binding is None:
            return None
        data[binding.field] = binding.value_for(raw)
        return binding.field

    def step_ids(self):
        return self._bindings.keys()

    def fields(self):
        return {binding.field for binding in self._bindings.values()}
