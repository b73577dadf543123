"""Tests for the value classes which represent PostgreSQL values without a natural Python counterpart."""
from __future__ import annotations

import copy
import pickle
import unittest

from ivory import Composite, EnumItem, IncomparableError, PgArray, Range
from ivory.value import ConventionalRangeCanonicalFunc

IntCanonical = ConventionalRangeCanonicalFunc(lambda delta, value: value + delta)


class RangeTests(unittest.TestCase):
    def test_creation(self) -> None:
        r = Range.from_bounds(1, 5)
        self.assertEqual((r.lower, r.upper, r.lower_inc, r.upper_inc), (1, 5, True, False))
        self.assertEqual(r.bounds_spec, "[)")
        self.assertEqual(Range.from_bounds(1, 5, False, True).bounds_spec, "(]")
        self.assertEqual(str(Range.from_bounds(None, 5, "[]")), "(-infinity,5]")

    def test_empty_ranges(self) -> None:
        self.assertTrue(Range.from_bounds(5, 1).is_empty)
        self.assertTrue(Range.from_bounds(3, 3).is_empty)
        self.assertFalse(Range.from_bounds(3, 3, "[]").is_empty)
        self.assertEqual(Range.from_bounds(5, 1), Range.empty())
        self.assertIsNone(Range.empty().bounds_spec)
        self.assertEqual(str(Range.empty()), "empty")

    def test_invalid_bounds(self) -> None:
        with self.assertRaises(ValueError):
            Range.from_bounds(1, 5, "<>")
        with self.assertRaises(ValueError):
            Range.from_bounds(1, 5, "[)", True)
        with self.assertRaises(IncomparableError):
            Range.from_bounds(1, "a")

    def test_canonical_form(self) -> None:
        r = Range.from_bounds(1, 3, "[]", canonical=IntCanonical)
        self.assertEqual(r, Range.from_bounds(1, 4))
        self.assertEqual(Range.from_bounds(0, 3, "()", canonical=IntCanonical), Range.from_bounds(1, 3))
        self.assertEqual(hash(r), hash(Range.from_bounds(1, 4)))

    def test_single_point(self) -> None:
        self.assertTrue(Range.from_bounds(3, 3, "[]").is_single_point())
        self.assertTrue(Range.from_bounds(1, 2, canonical=IntCanonical).is_single_point())
        self.assertFalse(Range.from_bounds(1, 2).is_single_point(), "Continuous range should not be a single point")
        self.assertFalse(Range.from_bounds(None, 2).is_single_point())

    def test_to_bounds(self) -> None:
        r = Range.from_bounds(1, 4, canonical=IntCanonical)
        self.assertEqual(r.to_bounds("[]"), (1, 3))
        self.assertEqual(r.to_bounds("()"), (0, 4))
        self.assertIsNone(Range.empty().to_bounds("[]"))
        with self.assertRaises(TypeError):
            Range.from_bounds(1, 4).to_bounds("[]")

    def test_contains_element(self) -> None:
        r = Range.from_bounds(1, 5)
        self.assertTrue(r.contains_element(1))
        self.assertFalse(r.contains_element(5))
        self.assertIsNone(r.contains_element(None))
        self.assertIn(3, r)
        self.assertNotIn(0, r)
        self.assertIn(100, Range.from_bounds(1, None))
        self.assertNotIn(1, Range.empty())

    def test_position_to_element(self) -> None:
        r = Range.from_bounds(1, 5)
        self.assertTrue(r.left_of_element(5))
        self.assertFalse(r.left_of_element(4))
        self.assertTrue(r.right_of_element(0))
        self.assertFalse(r.right_of_element(1))

    def test_contains_range(self) -> None:
        outer = Range.from_bounds(1, 10)
        inner = Range.from_bounds(2, 5)
        self.assertTrue(outer.contains_range(inner))
        self.assertFalse(inner.contains_range(outer))
        self.assertTrue(inner.contained_in_range(outer))
        self.assertTrue(inner.contains_range(Range.empty()))
        self.assertTrue(Range.from_bounds(None, None).contains_range(outer))
        self.assertFalse(Range.from_bounds(1, 10).contains_range(Range.from_bounds(1, 10, "[]")))

    def test_overlaps(self) -> None:
        self.assertFalse(Range.from_bounds(1, 5).overlaps(Range.from_bounds(5, 8)))
        self.assertTrue(Range.from_bounds(1, 5, "[]").overlaps(Range.from_bounds(5, 8)))
        self.assertFalse(Range.from_bounds(1, 5).overlaps(Range.empty()))
        self.assertIsNone(Range.from_bounds(1, 5).overlaps(None))

    def test_intersect(self) -> None:
        self.assertEqual(Range.from_bounds(1, 5).intersect(Range.from_bounds(3, 8)), Range.from_bounds(3, 5))
        self.assertEqual(Range.from_bounds(None, 5).intersect(Range.from_bounds(3, None)), Range.from_bounds(3, 5))
        self.assertTrue(Range.from_bounds(1, 3).intersect(Range.from_bounds(5, 8)).is_empty)

    def test_strict_position(self) -> None:
        self.assertTrue(Range.from_bounds(1, 5).strictly_left_of(Range.from_bounds(5, 8)))
        self.assertFalse(Range.from_bounds(1, 5, "[]").strictly_left_of(Range.from_bounds(5, 8)))
        self.assertTrue(Range.from_bounds(5, 8).strictly_right_of(Range.from_bounds(1, 5)))
        self.assertFalse(Range.empty().strictly_left_of(Range.from_bounds(5, 8)))


class CompositeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.value = Composite.from_sequence(["id", "nickname"], [1, None])

    def test_access(self) -> None:
        self.assertEqual(self.value["id"], 1)
        self.assertIsNone(self.value.nickname)
        self.assertEqual(self.value.value_at(0), 1)
        self.assertEqual(list(self.value), ["id", "nickname"])
        self.assertEqual(len(self.value), 2)
        self.assertEqual(self.value.to_map(), {"id": 1, "nickname": None})
        with self.assertRaises(AttributeError):
            _ = self.value.age

    def test_immutability(self) -> None:
        with self.assertRaises(AttributeError):
            self.value.id = 2

    def test_equality(self) -> None:
        self.assertEqual(self.value, Composite({"id": 1, "nickname": None}))
        self.assertNotEqual(self.value, Composite({"nickname": None, "id": 1}), "Attribute order should matter")

    def test_str(self) -> None:
        self.assertEqual(str(self.value), "(1,)")

    def test_invalid_sequence(self) -> None:
        with self.assertRaises(ValueError):
            Composite.from_sequence(["id"], [1, 2])

    def test_copy_and_pickle(self) -> None:
        with self.subTest("Uninitialized instance"):
            blank = Composite.__new__(Composite)
            with self.assertRaises(AttributeError):
                _ = blank._values
            self.assertFalse(hasattr(blank, "__setstate__"))

        with self.subTest("Shallow copy"):
            self.assertEqual(copy.copy(self.value), self.value)

        with self.subTest("Deep copy"):
            self.assertEqual(copy.deepcopy(self.value), self.value)

        with self.subTest("Pickle"):
            restored = pickle.loads(pickle.dumps(self.value))
            self.assertEqual(restored, self.value)
            self.assertEqual(restored.id, 1)


class EnumItemTests(unittest.TestCase):
    def test_equality(self) -> None:
        self.assertEqual(EnumItem("public", "mood", "ok", 1), EnumItem("public", "mood", "ok"))
        self.assertNotEqual(EnumItem("public", "mood", "ok"), EnumItem("public", "color", "ok"))
        self.assertEqual(hash(EnumItem("public", "mood", "ok", 1)), hash(EnumItem("public", "mood", "ok")))
        self.assertEqual(str(EnumItem("public", "mood", "ok")), "ok")

    def test_ordering(self) -> None:
        sad = EnumItem("public", "mood", "sad", 0)
        happy = EnumItem("public", "mood", "happy", 2)
        self.assertLess(sad, happy)
        self.assertGreater(happy, sad)
        self.assertEqual(sorted([happy, sad]), [sad, happy])

    def test_incomparable(self) -> None:
        with self.assertRaises(IncomparableError):
            _ = EnumItem("public", "mood", "sad", 0) < EnumItem("public", "color", "red", 0)
        with self.assertRaises(IncomparableError):
            _ = EnumItem("public", "mood", "sad") < EnumItem("public", "mood", "happy", 2)


class PgArrayTests(unittest.TestCase):
    def test_list_behavior(self) -> None:
        array = PgArray([1, 2, 3], [0])
        self.assertEqual(array, [1, 2, 3])
        self.assertEqual(array.lower_bounds, (0,))
        self.assertIsInstance(array, list)
        self.assertEqual(repr(array), "PgArray([1, 2, 3], lower_bounds=(0,))")


if __name__ == "__main__":
    unittest.main()
