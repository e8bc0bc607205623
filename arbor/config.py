"""
Mapping policy and configuration lifecycle.

A Mapper is configured once (aliases, implicit collections, default
implementations, converters) and then used many times read-only. Calling
Mapper.freeze() ends the configuration phase: every registry rejects
further changes with a ConfigurationError, so concurrent marshal and
unmarshal calls can share the mapper safely.

Per-call behaviour that is not part of the class configuration lives in a
MappingPolicy:

    >>> from arbor import Mapper
    >>> from arbor.config import MappingPolicy
    >>> mapper = Mapper(policy=MappingPolicy(reference_mode="absolute"))
    >>>
    >>> # Or use a preset
    >>> from arbor.config import NO_REFERENCES
    >>> mapper = Mapper(policy=NO_REFERENCES)
"""

from __future__ import annotations

from dataclasses import dataclass

from arbor.errors import ConfigurationError
from arbor.references import REFERENCE_MODES


@dataclass(frozen=True)
class MappingPolicy:
    """
    Behaviour switches for marshal and unmarshal calls.

    Attributes:
        reference_mode: How repeated objects are written. "relative" writes
            a path relative to the referring node (../../animal), "absolute"
            a path from the root (/list/animal), "none" writes every
            occurrence in full.
        allow_cycles: If True, an object that contains itself is written as
            a reference to its ancestor node. If False, such a cycle raises
            CyclicReferenceError. Cycles always raise in "none" mode.
        ignore_unknown_elements: If True, elements that match no field and
            no implicit collection are skipped while unmarshalling instead
            of raising UnresolvedSlotError.
        indent: Indentation used for XML text output.
    """

    reference_mode: str = "relative"
    allow_cycles: bool = True
    ignore_unknown_elements: bool = False
    indent: str = "  "

    def __post_init__(self):
        if self.reference_mode not in REFERENCE_MODES:
            raise ConfigurationError(
                f"Unknown reference mode '{self.reference_mode}'.\n"
                f"Expected one of: {', '.join(REFERENCE_MODES)}"
            )

    @property
    def cycles_permitted(self) -> bool:
        return self.allow_cycles and self.reference_mode != "none"


DEFAULT_POLICY = MappingPolicy()

ABSOLUTE_REFERENCES = MappingPolicy(reference_mode="absolute")

NO_REFERENCES = MappingPolicy(reference_mode="none")

# Rejects cycles and unknown elements, keeps shared-object references
STRICT_POLICY = MappingPolicy(allow_cycles=False, ignore_unknown_elements=False)


class Freezable:
    """Registry mixin implementing the configure-then-freeze lifecycle."""

    _frozen: bool = False

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_mutable(self, action: str) -> None:
        if self._frozen:
            raise ConfigurationError(
                f"Cannot {action}: the configuration is frozen.\n"
                f"Finish all configuration calls before Mapper.freeze()."
            )
