"""
Tests for implicit collections.

Tests cover:
1. Farm / MegaFarm: plain, inherited and overridden declarations
2. Declaration order independence
3. Item names, item types and field aliases
4. Default collection types (deque, set, frozenset) and empty collections
5. Null elements
6. Class-private fields hidden across inheritance levels (defined-in)
7. Polymorphic items and references into implicit collections
8. Implicit maps keyed by an item attribute
9. Routing by item type specificity and after omitted fields
"""

import collections
import collections.abc
import textwrap

import pytest

from arbor import (
    AmbiguousMappingError,
    ConfigurationError,
    InvalidSlotError,
    Mapper,
)


# =============================================================================
# Module-Level Test Classes (must be here for type names to resolve)
# =============================================================================

class StandardObject:
    """Compares and prints by instance attributes."""

    def __eq__(self, other):
        return type(self) is type(other) and vars(self) == vars(other)

    def __repr__(self):
        fields = ", ".join(f"{key}={value!r}" for key, value in vars(self).items())
        return f"{type(self).__name__}({fields})"


class Animal(StandardObject):
    name: str

    def __init__(self, name):
        self.name = name

    def __hash__(self):
        return hash(self.name)


class Dog(Animal):
    pass


class Cat(Animal):
    pass


class Farm(StandardObject):
    size: int
    animals: list[Animal]

    def __init__(self, size):
        self.size = size
        self.animals = []

    def add(self, animal):
        self.animals.append(animal)


class MegaFarm(Farm):
    separator: str
    names: list[str]

    def __init__(self, size):
        super().__init__(size)
        self.separator = "---"
        self.names = []


class Room(StandardObject):
    name: str

    def __init__(self, name):
        self.name = name


class Person(StandardObject):
    name: str
    email_addresses: collections.deque[str]

    def __init__(self, name):
        self.name = name
        self.email_addresses = collections.deque()


class House(StandardObject):
    rooms: list[Room]
    separator: str
    people: list[Person]

    def __init__(self):
        self.rooms = []
        self.separator = "---"
        self.people = []


class Zoo(StandardObject):
    animals: collections.abc.Set[Animal]

    def __init__(self, animals=None):
        self.animals = set() if animals is None else animals


class Aquarium(StandardObject):
    name: str
    fish: list[str]

    def __init__(self, name):
        self.name = name
        self.fish = []


class Area(Farm):
    __animals: list[Animal]

    def __init__(self, size):
        super().__init__(size)
        self.__animals = []

    def add_wild(self, animal):
        self.__animals.append(animal)

    @property
    def wild(self):
        return self.__animals


class County(Area):
    def __init__(self):
        super().__init__(10)


class Country(County):
    __animals: list[Animal]

    def __init__(self):
        super().__init__()
        self.__animals = []

    def add_marine(self, animal):
        self.__animals.append(animal)

    @property
    def marine(self):
        return self.__animals


class Pen(StandardObject):
    cats: list[Animal]
    dogs: list[Animal]

    def __init__(self):
        self.cats = []
        self.dogs = []


class Stable(StandardObject):
    horses: dict[str, Animal]

    def __init__(self):
        self.horses = {}


class Ranch(Farm):
    names: list

    def __init__(self, size):
        super().__init__(size)
        self.names = []


class Yard(StandardObject):
    animals: list[Animal]
    dogs: list[Dog]

    def __init__(self):
        self.animals = []
        self.dogs = []


# =============================================================================
# Fixtures and Helpers
# =============================================================================

def xml(text):
    return textwrap.dedent(text).strip()


def assert_both_ways(mapper, obj, expected):
    """Marshal to the expected text and read that text back as an equal object."""
    assert mapper.to_xml(obj) == expected
    result = mapper.from_xml(expected)
    assert result == obj
    return result


@pytest.fixture
def mapper():
    mapper = Mapper()
    mapper.alias_type("zoo", Zoo)
    mapper.alias_type("farm", Farm)
    mapper.alias_type("animal", Animal)
    mapper.alias_type("dog", Dog)
    mapper.alias_type("cat", Cat)
    mapper.alias_type("room", Room)
    mapper.alias_type("house", House)
    mapper.alias_type("person", Person)
    mapper.alias_type("area", Area)
    mapper.alias_type("country", Country)
    return mapper


@pytest.fixture
def farm():
    farm = Farm(100)
    farm.add(Animal("Cow"))
    farm.add(Animal("Sheep"))
    return farm


@pytest.fixture
def mega_farm():
    farm = MegaFarm(100)
    farm.add(Animal("Cow"))
    farm.add(Animal("Sheep"))
    farm.names.extend(["McDonald", "Ponte Rosa"])
    return farm


@pytest.fixture
def area():
    area = Area(1000)
    area.add(Animal("Cow"))
    area.add(Animal("Sheep"))
    area.add_wild(Animal("Falcon"))
    area.add_wild(Animal("Sparrow"))
    return area


# =============================================================================
# Farm Tests
# =============================================================================

class TestFarm:
    """Implicit collections on a single class."""

    def test_without_declaration(self, mapper, farm):
        expected = xml("""
            <farm>
              <size>100</size>
              <animals>
                <animal>
                  <name>Cow</name>
                </animal>
                <animal>
                  <name>Sheep</name>
                </animal>
              </animals>
            </farm>
        """)
        assert_both_ways(mapper, farm, expected)

    def test_with_list(self, mapper, farm):
        expected = xml("""
            <farm>
              <size>100</size>
              <animal>
                <name>Cow</name>
              </animal>
              <animal>
                <name>Sheep</name>
              </animal>
            </farm>
        """)
        mapper.add_implicit_collection(Farm, "animals")
        result = assert_both_ways(mapper, farm, expected)
        assert type(result.animals) is list

    def test_referenced_implicit_element(self, mapper):
        cow = Animal("Cow")
        sheep = Animal("Sheep")
        farm = Farm(100)
        farm.add(cow)
        farm.add(sheep)
        expected = xml("""
            <list>
              <animal>
                <name>Cow</name>
              </animal>
              <farm>
                <size>100</size>
                <animal reference="../../animal"/>
                <animal>
                  <name>Sheep</name>
                </animal>
              </farm>
              <animal reference="../farm/animal[2]"/>
            </list>
        """)
        mapper.add_implicit_collection(Farm, "animals")

        result = assert_both_ways(mapper, [cow, farm, sheep], expected)

        assert result[1].animals[0] is result[0]
        assert result[1].animals[1] is result[2]

    def test_collects_different_types(self, mapper):
        farm = Farm(100)
        farm.add(Dog("Lessie"))
        farm.add(Cat("Garfield"))
        farm.add(Cat("Felix"))
        farm.add(Dog("Cujo"))
        expected = xml("""
            <farm>
              <size>100</size>
              <dog>
                <name>Lessie</name>
              </dog>
              <cat>
                <name>Garfield</name>
              </cat>
              <cat>
                <name>Felix</name>
              </cat>
              <dog>
                <name>Cujo</name>
              </dog>
            </farm>
        """)
        mapper.add_implicit_collection(Farm, "animals")
        result = assert_both_ways(mapper, farm, expected)
        assert [type(animal) for animal in result.animals] == [Dog, Cat, Cat, Dog]

    def test_item_name_marks_subclasses_with_class(self, mapper):
        farm = Farm(5)
        farm.add(Animal("Cow"))
        farm.add(Dog("Rex"))
        expected = xml("""
            <farm>
              <size>5</size>
              <beast>
                <name>Cow</name>
              </beast>
              <beast class="dog">
                <name>Rex</name>
              </beast>
            </farm>
        """)
        mapper.add_implicit_collection(Farm, "animals", item_name="beast")
        assert_both_ways(mapper, farm, expected)

    def test_empty_collection_reads_back_empty(self, mapper):
        mapper.add_implicit_collection(Farm, "animals")
        result = mapper.from_xml("<farm><size>3</size></farm>")
        assert result == Farm(3)


# =============================================================================
# Inheritance Tests
# =============================================================================

class TestInheritance:
    """Declarations on a superclass, a subclass, or both."""

    MEGA_FARM = xml("""
        <MEGA-farm>
          <size>100</size>
          <animal>
            <name>Cow</name>
          </animal>
          <animal>
            <name>Sheep</name>
          </animal>
          <separator>---</separator>
          <name>McDonald</name>
          <name>Ponte Rosa</name>
        </MEGA-farm>
    """)

    def test_inherits_declaration_from_superclass(self, mapper):
        mapper.alias_type("MEGA-farm", MegaFarm)
        farm = MegaFarm(100)
        farm.add(Animal("Cow"))
        farm.add(Animal("Sheep"))
        expected = xml("""
            <MEGA-farm>
              <size>100</size>
              <animal>
                <name>Cow</name>
              </animal>
              <animal>
                <name>Sheep</name>
              </animal>
              <separator>---</separator>
            </MEGA-farm>
        """)
        mapper.add_implicit_collection(Farm, "animals")
        mapper.add_implicit_collection(MegaFarm, "names", item_name="name", item_type=str)
        assert_both_ways(mapper, farm, expected)

    def test_inherited_and_direct_declarations(self, mapper, mega_farm):
        mapper.alias_type("MEGA-farm", MegaFarm)
        mapper.add_implicit_collection(Farm, "animals")
        mapper.add_implicit_collection(MegaFarm, "names", item_name="name", item_type=str)
        assert_both_ways(mapper, mega_farm, self.MEGA_FARM)

    def test_declaration_order_does_not_matter(self, mapper, mega_farm):
        mapper.alias_type("MEGA-farm", MegaFarm)
        mapper.add_implicit_collection(MegaFarm, "names", item_name="name", item_type=str)
        mapper.add_implicit_collection(Farm, "animals")
        assert_both_ways(mapper, mega_farm, self.MEGA_FARM)

    def test_subclass_can_declare_inherited_field(self, mapper, farm):
        mapper.alias_type("MEGA-farm", MegaFarm)
        mapper.add_implicit_collection(MegaFarm, "animals")
        plain = mapper.to_xml(farm)
        assert "<animals>" in plain

        mega = MegaFarm(100)
        mega.animals = list(farm.animals)
        mega.names = None
        expected = xml("""
            <MEGA-farm>
              <size>100</size>
              <animal>
                <name>Cow</name>
              </animal>
              <animal>
                <name>Sheep</name>
              </animal>
              <separator>---</separator>
            </MEGA-farm>
        """)
        assert mapper.to_xml(mega) == expected
        assert mapper.from_xml(expected).animals == farm.animals

    def test_different_declarations_in_subclass(self, mapper):
        mapper.alias_type("MEGA-farm", MegaFarm)
        farm = Farm(10)
        farm.add(Animal("Cod"))
        farm.add(Animal("Salmon"))
        mega = MegaFarm(100)
        mega.add(Animal("Cow"))
        mega.add(Animal("Sheep"))
        mega.names.extend(["McDonald", "Ponte Rosa"])
        expected = xml("""
            <list>
              <farm>
                <size>10</size>
                <fish>
                  <name>Cod</name>
                </fish>
                <fish>
                  <name>Salmon</name>
                </fish>
              </farm>
              <MEGA-farm>
                <size>100</size>
                <animal>
                  <name>Cow</name>
                </animal>
                <animal>
                  <name>Sheep</name>
                </animal>
                <separator>---</separator>
                <name>McDonald</name>
                <name>Ponte Rosa</name>
              </MEGA-farm>
            </list>
        """)
        mapper.add_implicit_collection(Farm, "animals", item_name="fish", item_type=Animal)
        mapper.add_implicit_collection(MegaFarm, "animals")
        mapper.add_implicit_collection(MegaFarm, "names", item_name="name", item_type=str)
        assert_both_ways(mapper, [farm, mega], expected)

    def test_untyped_list_in_subclass_takes_only_its_item_type(self, mapper):
        mapper.alias_type("ranch", Ranch)
        mapper.add_implicit_collection(Farm, "animals")
        mapper.add_implicit_collection(Ranch, "names", item_name="name", item_type=str)
        ranch = Ranch(5)
        ranch.add(Animal("Cow"))
        ranch.names.append("Joe")
        expected = xml("""
            <ranch>
              <size>5</size>
              <animal>
                <name>Cow</name>
              </animal>
              <name>Joe</name>
            </ranch>
        """)
        result = assert_both_ways(mapper, ranch, expected)
        assert result.animals == [Animal("Cow")]
        assert result.names == ["Joe"]


# =============================================================================
# Default Collection Type Tests
# =============================================================================

class TestDefaultCollections:
    """Collections created from the declared field type."""

    HOUSE = xml("""
        <house>
          <room>
            <name>kitchen</name>
          </room>
          <room>
            <name>bathroom</name>
          </room>
          <separator>---</separator>
          <person>
            <name>joe</name>
            <email>joe@house.org</email>
            <email>joe.farmer@house.org</email>
          </person>
          <person>
            <name>jaimie</name>
            <email>jaimie@house.org</email>
            <email>jaimie.farmer@house.org</email>
            <email>jaimie.ann.farmer@house.org</email>
          </person>
        </house>
    """)

    def test_collection_based_on_declared_type(self, mapper):
        house = House()
        house.rooms.extend([Room("kitchen"), Room("bathroom")])
        joe = Person("joe")
        joe.email_addresses.extend(["joe@house.org", "joe.farmer@house.org"])
        jaimie = Person("jaimie")
        jaimie.email_addresses.extend(
            ["jaimie@house.org", "jaimie.farmer@house.org", "jaimie.ann.farmer@house.org"]
        )
        house.people.extend([joe, jaimie])

        mapper.add_implicit_collection(House, "rooms", item_type=Room)
        mapper.add_implicit_collection(House, "people", item_type=Person)
        mapper.add_implicit_collection(Person, "email_addresses", item_name="email", item_type=str)

        result = assert_both_ways(mapper, house, self.HOUSE)
        assert type(result.people[0].email_addresses) is collections.deque

    def test_empty_lists_are_not_written(self, mapper):
        mapper.add_implicit_collection(House, "rooms", item_type=Room)
        mapper.add_implicit_collection(House, "people", item_type=Person)
        expected = xml("""
            <house>
              <separator>---</separator>
            </house>
        """)
        assert_both_ways(mapper, House(), expected)

    def test_with_set(self, mapper):
        zoo = Zoo()
        zoo.animals.add(Animal("Lion"))
        zoo.animals.add(Animal("Ape"))
        mapper.add_implicit_collection(Zoo, "animals")

        text = mapper.to_xml(zoo)
        assert text.count("<animal>") == 2
        assert "<animals>" not in text
        result = mapper.from_xml(text)
        assert type(result.animals) is set
        assert result == zoo

    def test_with_different_default_implementation(self, mapper):
        mapper.add_implicit_collection(Zoo, "animals")
        mapper.add_default_implementation(frozenset, collections.abc.Set)
        text = xml("""
            <zoo>
              <animal>
                <name>Lion</name>
              </animal>
              <animal>
                <name>Ape</name>
              </animal>
            </zoo>
        """)
        zoo = mapper.from_xml(text)
        assert type(zoo.animals) is frozenset
        assert zoo.animals == {Animal("Lion"), Animal("Ape")}


# =============================================================================
# Naming Tests
# =============================================================================

class TestNaming:
    """Item names matching field names and aliases."""

    EXPECTED = xml("""
        <aquarium>
          <name>hatchery</name>
          <fish>salmon</fish>
          <fish>halibut</fish>
          <fish>snapper</fish>
        </aquarium>
    """)

    @pytest.fixture
    def aquarium(self, mapper):
        mapper.alias_type("aquarium", Aquarium)
        aquarium = Aquarium("hatchery")
        aquarium.fish.extend(["salmon", "halibut", "snapper"])
        return aquarium

    def test_explicit_item_name_matching_field_name(self, mapper, aquarium):
        mapper.add_implicit_collection(Aquarium, "fish", item_name="fish", item_type=str)
        assert_both_ways(mapper, aquarium, self.EXPECTED)

    def test_type_alias_matching_field_name(self, mapper, aquarium):
        mapper.alias_type("fish", str)
        mapper.add_implicit_collection(Aquarium, "fish")
        assert_both_ways(mapper, aquarium, self.EXPECTED)

    def test_item_name_matching_field_alias(self, mapper, aquarium):
        mapper.alias_field("animal", Aquarium, "fish")
        mapper.add_implicit_collection(Aquarium, "fish", item_name="animal", item_type=str)
        expected = xml("""
            <aquarium>
              <name>hatchery</name>
              <animal>salmon</animal>
              <animal>halibut</animal>
              <animal>snapper</animal>
            </aquarium>
        """)
        assert_both_ways(mapper, aquarium, expected)


# =============================================================================
# Null Element Tests
# =============================================================================

class TestNullElements:
    """None items are kept in place as <null/> nodes."""

    def test_with_null_element(self, mapper):
        farm = Farm(100)
        farm.add(None)
        farm.add(Animal("Cow"))
        expected = xml("""
            <farm>
              <size>100</size>
              <null/>
              <animal>
                <name>Cow</name>
              </animal>
            </farm>
        """)
        mapper.add_implicit_collection(Farm, "animals")
        assert_both_ways(mapper, farm, expected)

    def test_with_alias_and_null_element(self, mapper):
        farm = Farm(100)
        farm.add(None)
        farm.add(Animal("Cow"))
        farm.add(None)
        expected = xml("""
            <farm>
              <size>100</size>
              <null/>
              <beast>
                <name>Cow</name>
              </beast>
              <null/>
            </farm>
        """)
        mapper.add_implicit_collection(Farm, "animals", item_name="beast", item_type=Animal)
        assert_both_ways(mapper, farm, expected)

    def test_null_follows_previous_collection(self, mapper):
        mapper.add_implicit_collection(House, "rooms", item_type=Room)
        mapper.add_implicit_collection(House, "people", item_type=Person)
        house = House()
        house.rooms.extend([Room("hall"), None])
        house.people.extend([Person("ann"), None])
        result = mapper.from_xml(mapper.to_xml(house))
        assert result == house

    def test_null_waits_for_next_item(self, mapper):
        mapper.add_implicit_collection(House, "rooms", item_type=Room)
        mapper.add_implicit_collection(House, "people", item_type=Person)
        house = House()
        house.people.extend([None, Person("ann")])
        result = mapper.from_xml(mapper.to_xml(house))
        assert result.people == [None, Person("ann")]
        assert result.rooms == []

    def test_null_after_ordinary_field_goes_to_following_collection(self, mapper):
        mapper.add_implicit_collection(House, "rooms", item_type=Room)
        mapper.add_implicit_collection(House, "people", item_type=Person)
        house = House()
        house.people.append(None)
        expected = xml("""
            <house>
              <separator>---</separator>
              <null/>
            </house>
        """)
        result = assert_both_ways(mapper, house, expected)
        assert result.rooms == []

    def test_only_null_before_ordinary_field(self, mapper):
        mapper.alias_type("mega-farm", MegaFarm)
        mapper.add_implicit_collection(Farm, "animals")
        mapper.add_implicit_collection(MegaFarm, "names", item_name="name", item_type=str)
        farm = MegaFarm(1)
        farm.add(None)
        farm.names.append("Joe")
        expected = xml("""
            <mega-farm>
              <size>1</size>
              <null/>
              <separator>---</separator>
              <name>Joe</name>
            </mega-farm>
        """)
        assert_both_ways(mapper, farm, expected)

    def test_null_between_neighbouring_collections_is_ambiguous(self, mapper):
        mapper.alias_type("pen", Pen)
        mapper.add_implicit_collection(Pen, "cats")
        mapper.add_implicit_collection(Pen, "dogs")
        pen = Pen()
        pen.dogs.append(None)
        text = mapper.to_xml(pen)
        with pytest.raises(AmbiguousMappingError, match="null element"):
            mapper.from_xml(text)


# =============================================================================
# Hidden Field Tests
# =============================================================================

class TestHiddenFields:
    """Class-private fields with the same name on several inheritance levels."""

    def test_with_hidden_list(self, mapper, area):
        expected = xml("""
            <area>
              <size>1000</size>
              <animal defined-in="farm">
                <name>Cow</name>
              </animal>
              <animal defined-in="farm">
                <name>Sheep</name>
              </animal>
              <animal>
                <name>Falcon</name>
              </animal>
              <animal>
                <name>Sparrow</name>
              </animal>
            </area>
        """)
        mapper.add_implicit_collection(Farm, "animals")
        mapper.add_implicit_collection(Area, "animals")
        result = assert_both_ways(mapper, area, expected)
        assert [animal.name for animal in result.wild] == ["Falcon", "Sparrow"]

    def test_with_hidden_list_and_different_alias(self, mapper, area):
        expected = xml("""
            <area>
              <size>1000</size>
              <domesticated defined-in="farm">
                <name>Cow</name>
              </domesticated>
              <domesticated defined-in="farm">
                <name>Sheep</name>
              </domesticated>
              <wild>
                <name>Falcon</name>
              </wild>
              <wild>
                <name>Sparrow</name>
              </wild>
            </area>
        """)
        mapper.add_implicit_collection(Farm, "animals", item_name="domesticated", item_type=Animal)
        mapper.add_implicit_collection(Area, "animals", item_name="wild", item_type=Animal)
        assert_both_ways(mapper, area, expected)

    def test_does_not_inherit_from_hidden_list_of_superclass(self, mapper, area):
        expected = xml("""
            <area>
              <size>1000</size>
              <animal defined-in="farm">
                <name>Cow</name>
              </animal>
              <animal defined-in="farm">
                <name>Sheep</name>
              </animal>
              <animals>
                <animal>
                  <name>Falcon</name>
                </animal>
                <animal>
                  <name>Sparrow</name>
                </animal>
              </animals>
            </area>
        """)
        mapper.add_implicit_collection(Farm, "animals")
        assert_both_ways(mapper, area, expected)

    def test_does_not_propagate_to_hidden_list_of_superclass(self, mapper, area):
        expected = xml("""
            <area>
              <size>1000</size>
              <animals defined-in="farm">
                <animal>
                  <name>Cow</name>
                </animal>
                <animal>
                  <name>Sheep</name>
                </animal>
              </animals>
              <animal>
                <name>Falcon</name>
              </animal>
              <animal>
                <name>Sparrow</name>
              </animal>
            </area>
        """)
        mapper.add_implicit_collection(Area, "animals")
        assert_both_ways(mapper, area, expected)

    def test_with_double_hidden_list(self, mapper):
        country = Country()
        country.add(Animal("Cow"))
        country.add(Animal("Sheep"))
        country.add_wild(Animal("Falcon"))
        country.add_wild(Animal("Sparrow"))
        country.add_marine(Animal("Whale"))
        country.add_marine(Animal("Dolphin"))
        expected = xml("""
            <country>
              <size>10</size>
              <animal defined-in="farm">
                <name>Cow</name>
              </animal>
              <animal defined-in="farm">
                <name>Sheep</name>
              </animal>
              <animal defined-in="area">
                <name>Falcon</name>
              </animal>
              <animal defined-in="area">
                <name>Sparrow</name>
              </animal>
              <animal>
                <name>Whale</name>
              </animal>
              <animal>
                <name>Dolphin</name>
              </animal>
            </country>
        """)
        mapper.add_implicit_collection(Farm, "animals")
        mapper.add_implicit_collection(Area, "animals")
        mapper.add_implicit_collection(Country, "animals")
        result = assert_both_ways(mapper, country, expected)
        assert [animal.name for animal in result.marine] == ["Whale", "Dolphin"]

    def test_null_in_hidden_list_keeps_defined_in(self, mapper, area):
        area.add(None)
        mapper.add_implicit_collection(Farm, "animals")
        mapper.add_implicit_collection(Area, "animals")
        text = mapper.to_xml(area)
        assert '<null defined-in="farm"/>' in text
        assert mapper.from_xml(text) == area


# =============================================================================
# Implicit Map Tests
# =============================================================================

class TestImplicitMaps:
    """Mapping fields written as bare values keyed by an item attribute."""

    def test_map_keyed_by_item_field(self, mapper):
        mapper.alias_type("stable", Stable)
        mapper.add_implicit_collection(Stable, "horses", key_field="name")
        stable = Stable()
        stable.horses["Star"] = Animal("Star")
        stable.horses["Dusty"] = Animal("Dusty")
        expected = xml("""
            <stable>
              <animal>
                <name>Star</name>
              </animal>
              <animal>
                <name>Dusty</name>
              </animal>
            </stable>
        """)
        result = assert_both_ways(mapper, stable, expected)
        assert list(result.horses) == ["Star", "Dusty"]

    def test_map_without_key_field_is_rejected(self, mapper):
        with pytest.raises(ConfigurationError, match="key_field"):
            mapper.add_implicit_collection(Stable, "horses")


# =============================================================================
# Declaration Error Tests
# =============================================================================

class TestDeclarationErrors:
    """Invalid declarations are rejected before anything is registered."""

    def test_can_be_declared_only_for_collections(self, mapper):
        with pytest.raises(ConfigurationError, match="declares no collection"):
            mapper.add_implicit_collection(Animal, "name")

    def test_unknown_field(self, mapper):
        with pytest.raises(InvalidSlotError):
            mapper.add_implicit_collection(Farm, "barns")

    def test_incompatible_item_type(self, mapper):
        with pytest.raises(ConfigurationError, match="cannot be held"):
            mapper.add_implicit_collection(Farm, "animals", item_name="word", item_type=str)

    def test_duplicate_item_name(self, mapper):
        mapper.add_implicit_collection(House, "rooms", item_name="thing")
        with pytest.raises(ConfigurationError, match="already used"):
            mapper.add_implicit_collection(House, "people", item_name="thing")

    def test_failed_declaration_leaves_registry_unchanged(self, mapper, farm):
        with pytest.raises(ConfigurationError):
            mapper.add_implicit_collection(Farm, "animals", item_name="word", item_type=str)
        assert "<animals>" in mapper.to_xml(farm)

    def test_equally_specific_collections_are_ambiguous(self, mapper):
        mapper.alias_type("pen", Pen)
        mapper.add_implicit_collection(Pen, "cats")
        mapper.add_implicit_collection(Pen, "dogs")
        pen = Pen()
        pen.cats.append(Animal("Tom"))
        text = mapper.to_xml(pen)
        with pytest.raises(AmbiguousMappingError, match="cats, dogs"):
            mapper.from_xml(text)


# =============================================================================
# Routing Tests
# =============================================================================

class TestRouting:
    """Which implicit collection an incoming element is read into."""

    def test_narrower_item_type_wins_on_same_class(self, mapper):
        mapper.alias_type("yard", Yard)
        mapper.add_implicit_collection(Yard, "animals")
        mapper.add_implicit_collection(Yard, "dogs")
        yard = Yard()
        yard.animals.append(Cat("Tom"))
        yard.dogs.append(Dog("Rex"))
        expected = xml("""
            <yard>
              <cat>
                <name>Tom</name>
              </cat>
              <dog>
                <name>Rex</name>
              </dog>
            </yard>
        """)
        result = assert_both_ways(mapper, yard, expected)
        assert result.animals == [Cat("Tom")]
        assert result.dogs == [Dog("Rex")]

    def test_omitted_field_is_no_longer_implicit(self, mapper, farm):
        mapper.add_implicit_collection(Farm, "animals")
        assert "<animal>" in mapper.to_xml(farm)
        mapper.omit_field(Farm, "animals")
        result = mapper.from_xml("<farm><size>1</size></farm>")
        assert vars(result) == {"size": 1}
