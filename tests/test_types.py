"""
Tests for type descriptors.
"""

import ctypes
from typing import Annotated, List, Optional, Sequence, Tuple

import pytest

from mvcmachine.types import TypeDescriptor, array_of, declare_type, describe


class Animal:
    pass


class Dog(Animal):
    pass


class Puppy(Dog):
    pass


class TestDescribe:
    """Test descriptors derived from classes and annotations."""

    def test_class_descriptor_is_cached(self):
        """The same class always gives the same descriptor instance."""
        assert describe(Dog) is describe(Dog)
        assert describe(Dog).python_type is Dog
        assert describe(Dog).name == "Dog"

    def test_existing_descriptor_is_returned_as_is(self):
        descriptor = declare_type("UserId", supertypes=[str])
        assert describe(descriptor) is descriptor

    def test_list_annotation_describes_an_array(self):
        assert describe(List[int]) == array_of(int)
        assert describe(List[int]).component == describe(int)
        assert describe(List[int]).is_array

    def test_sequence_and_homogeneous_tuple_describe_arrays(self):
        assert describe(Sequence[str]) == array_of(str)
        assert describe(Tuple[int, ...]) == array_of(int)

    def test_heterogeneous_tuple_is_rejected(self):
        with pytest.raises(TypeError):
            describe(Tuple[int, str])

    def test_optional_and_annotated_describe_the_inner_type(self):
        assert describe(Optional[int]) == describe(int)
        assert describe(Annotated[Dog, "meta"]) == describe(Dog)

    def test_ctypes_scalars_are_primitive(self):
        assert describe(ctypes.c_int).primitive
        assert not describe(int).primitive

    def test_non_type_is_rejected(self):
        with pytest.raises(TypeError):
            describe(42)


class TestAssignability:
    """Test distance and assignability over the supertype graph."""

    def test_distance_to_ancestors(self):
        puppy = describe(Puppy)
        assert puppy.distance_to(describe(Puppy)) == 0
        assert puppy.distance_to(describe(Dog)) == 1
        assert puppy.distance_to(describe(Animal)) == 2

    def test_unrelated_types_have_no_distance(self):
        assert describe(Dog).distance_to(describe(int)) is None
        assert describe(Animal).distance_to(describe(Dog)) is None

    def test_subtype_is_assignable_to_supertype_only(self):
        assert describe(Dog).is_assignable_to(describe(Animal))
        assert not describe(Animal).is_assignable_to(describe(Dog))

    def test_bool_is_assignable_to_int(self):
        assert describe(bool).is_assignable_to(describe(int))

    def test_arrays_are_covariant(self):
        assert array_of(Dog).is_assignable_to(array_of(Animal))
        assert not array_of(Animal).is_assignable_to(array_of(Dog))

    def test_declared_type_uses_explicit_supertypes(self):
        user_id = declare_type("UserId", supertypes=[str])
        assert isinstance(user_id, TypeDescriptor)
        assert user_id.python_type is None
        assert user_id.is_assignable_to(describe(str))
        assert user_id.distance_to(describe(object)) == 2

    def test_declarations_with_the_same_name_are_distinct(self):
        as_text = declare_type("Code", supertypes=[str])
        as_number = declare_type("Code", supertypes=[int])
        assert as_text != as_number
        assert as_text == as_text
        assert len({as_text, as_number}) == 2
        assert array_of(as_text) != array_of(as_number)
        assert array_of(as_text) == array_of(as_text)

    def test_descriptors_are_immutable(self):
        with pytest.raises(AttributeError):
            describe(Dog).name = "Cat"
