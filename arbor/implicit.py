"""
Implicit collection declarations.

An implicit collection is a collection-valued field written as repeated
bare item nodes directly under its owner, without the wrapping node named
after the field:

    <farm>                          <farm>
      <size>100</size>                <size>100</size>
      <animals>                       <animal>...</animal>
        <animal>...</animal>   =>     <animal>...</animal>
        <animal>...</animal>        </farm>
      </animals>
    </farm>

Declarations are keyed by slot. A declaration registered on a class
applies to the slot of that name visible from the class, for instances of
the class and every subclass, except where a more-derived class registers
its own declaration for the same slot. A subclass that declares its own
slot of the same name (a class-private field) gets nothing from the
ancestor's declaration, and the ancestor's slot keeps its declaration.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from arbor.aliases import AliasRegistry
from arbor.config import Freezable
from arbor.errors import AmbiguousMappingError, ConfigurationError, UnknownTypeError
from arbor.fields import FieldResolver, FieldSlot, collection_kind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImplicitCollectionDeclaration:
    """
    Attributes:
        owner: Class the declaration was registered on.
        slot: The slot it applies to (declared by ``owner`` or an ancestor).
        item_name: Node name for items that are instances of ``item_type``.
            None names every item after its own type alias.
        item_type: Class of the items, used for naming and for routing
            incoming nodes when a class has several implicit collections.
        key_field: For mapping fields, the item attribute used as map key.
    """

    owner: type
    slot: FieldSlot
    item_name: str | None = None
    item_type: type | None = None
    key_field: str | None = None

    @property
    def element_type(self) -> type:
        """Most specific class known for the items."""
        return self.item_type or self.slot.item_type or object

    def names_item(self, item) -> bool:
        """True when ``item`` is written under ``item_name``."""
        if self.item_name is None or item is None:
            return False
        return self.item_type is None or isinstance(item, self.item_type)


class ImplicitCollectionRegistry(Freezable):
    """
    Registry of implicit collection declarations.

    Example:
        >>> registry = ImplicitCollectionRegistry(FieldResolver(), AliasRegistry())
        >>> registry.declare(Farm, "animals")
        >>> registry.declare(MegaFarm, "names", item_name="name", item_type=str)
        >>> registry.resolve_for_marshal(resolver.slot(MegaFarm, "animals"), MegaFarm)
        ImplicitCollectionDeclaration(owner=Farm, ...)
    """

    def __init__(self, fields: FieldResolver, aliases: AliasRegistry):
        self._fields = fields
        self._aliases = aliases
        self._declarations: dict[tuple[type, str], ImplicitCollectionDeclaration] = {}
        self._cache: dict[type, dict[FieldSlot, ImplicitCollectionDeclaration]] = {}
        fields.on_change(self._cache.clear)

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def declare(
        self,
        cls: type,
        field_name: str,
        item_name: str | None = None,
        item_type: type | None = None,
        key_field: str | None = None,
    ) -> ImplicitCollectionDeclaration:
        """
        Declare the field ``field_name`` of ``cls`` as an implicit collection.

        Raises:
            InvalidSlotError: If ``cls`` has no such field.
            ConfigurationError: If the field is not a collection or mapping,
                if a mapping is declared without ``key_field``, or if the
                item name is already used by another implicit collection of
                ``cls``.
        """
        self._check_mutable(f"declare an implicit collection {cls.__qualname__}.{field_name}")
        slot = self._fields.slot(cls, field_name)
        kind = collection_kind(slot.kind)
        if kind is None:
            raise ConfigurationError(
                f"Field '{field_name}' of {cls.__qualname__} declares no collection, map or tuple\n"
                f"(declared type: {slot.declared_type!r})."
            )
        if kind == "map" and key_field is None:
            raise ConfigurationError(
                f"Field '{field_name}' of {cls.__qualname__} is a mapping.\n"
                f"Pass key_field= to name the item attribute used as key."
            )
        if kind != "map" and key_field is not None:
            raise ConfigurationError(
                f"key_field is only valid for mappings, '{field_name}' of {cls.__qualname__} is not one."
            )
        if item_type is not None:
            if not isinstance(item_type, type):
                raise ConfigurationError(f"item_type must be a class, got {item_type!r}")
            declared_items = slot.item_type
            if declared_items not in (None, object) and not issubclass(item_type, declared_items):
                raise ConfigurationError(
                    f"Items of type {item_type.__qualname__} cannot be held by field "
                    f"'{field_name}' of {cls.__qualname__} ({slot.declared_type!r})."
                )
        if item_name is not None:
            for (owner, name), other in self._declarations.items():
                if owner is cls and name != field_name and other.item_name == item_name:
                    raise ConfigurationError(
                        f"Item name '{item_name}' is already used by the implicit collection "
                        f"'{name}' of {cls.__qualname__}."
                    )

        declaration = ImplicitCollectionDeclaration(cls, slot, item_name, item_type, key_field)
        logger.debug("implicit collection %s on %s", slot, cls.__qualname__)
        self._declarations[(cls, field_name)] = declaration
        self._cache.clear()
        return declaration

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def resolve_for_marshal(
        self, slot: FieldSlot, container_class: type | None = None
    ) -> ImplicitCollectionDeclaration | None:
        """
        Find the declaration applying to ``slot`` in an instance of ``container_class``.

        The container's MRO is walked from the most-derived class; the first
        declaration for the slot's name whose resolved slot is ``slot``
        wins. Declarations registered for a shadowing slot of the same name
        resolve to that other slot and are passed over.
        """
        container = container_class or slot.declaring_class
        for klass in container.__mro__:
            declaration = self._declarations.get((klass, slot.name))
            if declaration is not None and declaration.slot == slot:
                return declaration
        return None

    def implicit_slots(self, container_class: type) -> dict[FieldSlot, ImplicitCollectionDeclaration]:
        """Every mapped slot of ``container_class`` that is an implicit collection."""
        found = self._cache.get(container_class)
        if found is None:
            found = {}
            for slot in self._fields.describe(container_class).slots:
                declaration = self.resolve_for_marshal(slot, container_class)
                if declaration is not None:
                    found[slot] = declaration
            self._cache[container_class] = found
        return found

    def candidates(
        self, container_class: type, defined_in: type | None = None
    ) -> list[ImplicitCollectionDeclaration]:
        return [
            declaration
            for slot, declaration in self.implicit_slots(container_class).items()
            if defined_in is None or slot.declaring_class is defined_in
        ]

    def resolve_for_unmarshal(
        self, container_class: type, tag: str, defined_in: type | None = None
    ) -> ImplicitCollectionDeclaration | None:
        """
        Find the implicit collection an incoming node named ``tag`` belongs to.

        Declarations whose item name equals ``tag`` are preferred over
        declarations whose element type accepts the type ``tag`` stands for.
        A node named after its own type that no element type accepts may
        still belong to a declaration whose field annotation does, because
        items outside ``item_type`` keep their own type names. Within the
        chosen group the declaration of the most-derived slot wins, and
        among slots of one class the narrowest element type.

        Raises:
            AmbiguousMappingError: If several slots declared by the same
                class match equally well.
        """
        candidates = self.candidates(container_class, defined_in)
        if not candidates:
            return None
        group = [declaration for declaration in candidates if declaration.item_name == tag]
        if not group:
            tag_type = self._type_for_tag(tag)
            if tag_type is None:
                return None
            group = [
                declaration for declaration in candidates
                if issubclass(tag_type, declaration.element_type)
            ]
            if not group:
                group = [
                    declaration for declaration in candidates
                    if declaration.item_type is not None and _annotation_accepts(declaration, tag_type)
                ]
        return most_derived(container_class, group, tag)

    def _type_for_tag(self, tag: str) -> type | None:
        try:
            return self._aliases.type_for_name(tag)
        except UnknownTypeError:
            return None


def _annotation_accepts(declaration: ImplicitCollectionDeclaration, tag_type: type) -> bool:
    declared = declaration.slot.item_type
    # A bare list accepts anything, which says nothing about where the item belongs
    if declared in (None, object):
        return False
    return issubclass(tag_type, declared)


def most_derived(
    container_class: type, group: list[ImplicitCollectionDeclaration], tag: str
) -> ImplicitCollectionDeclaration | None:
    """
    Pick the declaration whose slot is declared lowest in the hierarchy.

    Slots declared by the same class are told apart by element type: the
    one whose element type is a subclass of every other's wins, so
    ``dogs: list[Dog]`` takes ``<dog>`` from ``animals: list[Animal]``.
    """
    if not group:
        return None
    mro = container_class.__mro__
    rank = min(mro.index(declaration.slot.declaring_class) for declaration in group)
    best = [declaration for declaration in group if mro.index(declaration.slot.declaring_class) == rank]
    if len(best) > 1:
        best = [
            declaration for declaration in best
            if all(issubclass(declaration.element_type, other.element_type) for other in best)
        ] or best
    if len(best) > 1:
        fields = ", ".join(sorted(declaration.slot.name for declaration in best))
        raise AmbiguousMappingError(
            f"Element '{tag}' matches the implicit collections {fields} of "
            f"{mro[rank].__qualname__} equally well.\n"
            f"Give them distinct item names or item types."
        )
    return best[0]
