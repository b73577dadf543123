"""Tests for the relational operations on relations created from Python data.

The tests here mainly act as regression tests to ensure that columns are resolved correctly (by offset, name, macro,
regular expression or callable) and that the conversions into Python collections produce the expected structures.
"""
from __future__ import annotations

import re
import unittest
import warnings

from ivory import AmbiguousError, ArrayRelation, UndefinedColumnError
from ivory.exceptions import DuplicateKeyWarning
from tests import regression_suite


def _cities() -> ArrayRelation:
    return ArrayRelation([
        ("cz", "Prague", 1300, "CET"),
        ("cz", "Brno", 380, "CET"),
        ("de", "Berlin", 3600, "CET"),
        ("pt", "Lisbon", 550, "WET"),
    ], column_names=["country", "city", "pop_total", "tz_name"])


class TupleTests(unittest.TestCase):
    def test_value_access(self) -> None:
        row = _cities().tuple(1)
        self.assertEqual(row[1], "Brno")
        self.assertEqual(row["pop_total"], 380)
        self.assertEqual(row.country, "cz")
        self.assertEqual(row.value(-1), "CET")
        self.assertEqual(row.value(lambda tup: tup.pop_total * 2), 760)
        self.assertEqual(list(row), ["cz", "Brno", 380, "CET"])
        self.assertEqual(len(row), 4)

    def test_undefined_columns(self) -> None:
        row = _cities().tuple()
        with self.assertRaises(UndefinedColumnError):
            row.value(4)
        with self.assertRaises(UndefinedColumnError):
            row.value("population")
        with self.assertRaises(AttributeError):
            _ = row.population

    def test_ambiguous_columns(self) -> None:
        row = ArrayRelation([(1, 2)], column_names=["a", "a"]).tuple()
        with self.assertRaises(AmbiguousError):
            row.value("a")
        with self.assertRaises(AmbiguousError):
            row.to_map()

    def test_immutability(self) -> None:
        row = _cities().tuple()
        with self.assertRaises(AttributeError):
            row.city = "Plzen"


class ArrayRelationTests(regression_suite.RelationTestCase):
    def test_rows_from_mappings(self) -> None:
        rel = ArrayRelation([{"a": 1, "b": 2}, {"a": 3, "c": 4}])
        self.assertEqual(rel.column_names, ["a", "b", "c"])
        self.assertRelationRows(rel, [(1, 2, None), (3, None, 4)])

    def test_sequences_require_names(self) -> None:
        with self.assertRaises(ValueError):
            ArrayRelation([(1, 2)])

    def test_basic_access(self) -> None:
        rel = _cities()
        self.assertEqual(len(rel), 4)
        self.assertEqual(rel.count(), 4)
        self.assertEqual(rel.value(), "cz")
        self.assertEqual(rel.value("city", 2), "Berlin")
        self.assertEqual(rel.col("city").values(), ["Prague", "Brno", "Berlin", "Lisbon"])
        self.assertEqual(rel.col(0).uniq(), ["cz", "de", "pt"])
        self.assertEqual(rel.col(lambda tup: tup.city[0]).values(), ["P", "B", "B", "L"])
        with self.assertRaises(UndefinedColumnError):
            rel.col("population")
        with self.assertRaises(UndefinedColumnError):
            rel.col(10)


class RelationalOperationTests(regression_suite.RelationTestCase):
    def setUp(self) -> None:
        self.rel = _cities()

    def test_filter(self) -> None:
        big = self.rel.filter(lambda tup: tup.pop_total > 1000)
        self.assertRelationRows(big.project(["city"]), [("Prague",), ("Berlin",)])
        self.assertEqual(len(big), 2)

    def test_project_by_name_and_offset(self) -> None:
        projected = self.rel.project(["city", 0])
        self.assertEqual(projected.column_names, ["city", "country"])
        self.assertRelationRows(projected.filter(lambda tup: tup.country == "pt"), [("Lisbon", "pt")])

    def test_project_negative_offset(self) -> None:
        self.assertEqual(self.rel.project([-1]).column_names, ["tz_name"])
        self.assertEqual(self.rel.project({"last": -1, "first": -4}).column_names, ["last", "first"])
        self.assertEqual(self.rel.project([-3]).value(), self.rel.col(-3).value(0))
        with self.assertRaises(UndefinedColumnError):
            self.rel.project([-5])
        with self.assertRaises(UndefinedColumnError):
            self.rel.project([4])

    def test_project_with_new_names(self) -> None:
        projected = self.rel.project({"name": "city", "twice": lambda tup: tup.pop_total * 2})
        self.assertEqual(projected.column_names, ["name", "twice"])
        self.assertEqual(projected.value("twice", 1), 760)

    def test_project_macros(self) -> None:
        self.assertEqual(self.rel.project(["*_*"]).column_names, ["pop_total", "tz_name"])
        self.assertEqual(self.rel.project({"x_*": "*_total"}).column_names, ["x_pop"])
        self.assertEqual(self.rel.project({r"\1": re.compile(r"^(.*)_name$")}).column_names, ["tz"])
        with self.assertRaises(UndefinedColumnError):
            self.rel.project(["nothing*"])

    def test_project_errors(self) -> None:
        with self.assertRaises(ValueError):
            self.rel.project([lambda tup: 1])
        with self.assertRaises(UndefinedColumnError):
            self.rel.project(["population"])
        with self.assertRaises(AmbiguousError):
            ArrayRelation([(1, 2)], column_names=["a", "a"]).project(["a"])

    def test_extend(self) -> None:
        extended = self.rel.extend({"big": lambda tup: tup.pop_total > 1000})
        self.assertEqual(extended.column_names, ["country", "city", "pop_total", "tz_name", "big"])
        self.assertEqual(extended.col("big").values(), [True, False, True, False])

    def test_rename(self) -> None:
        renamed = self.rel.rename({0: "cc", "city": "town", "*_name": "*_label"})
        self.assertEqual(renamed.column_names, ["cc", "town", "pop_total", "tz_label"])
        self.assertEqual(renamed.value("town"), "Prague")

    def test_sort(self) -> None:
        by_pop = self.rel.sort(lambda tup: tup.pop_total)
        self.assertEqual(by_pop.col("city").values(), ["Brno", "Lisbon", "Prague", "Berlin"])
        by_pop_desc = self.rel.sort(lambda tup: tup.pop_total, reverse=True)
        self.assertEqual(by_pop_desc.value("city"), "Berlin")

    def test_uniq(self) -> None:
        zones = self.rel.project(["tz_name"]).uniq()
        self.assertRelationRows(zones, [("CET",), ("WET",)])
        by_country = self.rel.uniq(lambda tup: tup.country)
        self.assertEqual(by_country.col("city").values(), ["Prague", "Berlin", "Lisbon"])


class ConversionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.rel = _cities()

    def test_to_list(self) -> None:
        first = self.rel.to_list()[0]
        self.assertEqual(first, {"country": "cz", "city": "Prague", "pop_total": 1300, "tz_name": "CET"})

    def test_to_set(self) -> None:
        self.assertEqual(self.rel.to_set("tz_name"), {"CET", "WET"})

    def test_to_df(self) -> None:
        df = self.rel.to_df()
        self.assertEqual(list(df.columns), ["country", "city", "pop_total", "tz_name"])
        self.assertEqual(len(df), 4)
        self.assertEqual(df["pop_total"].sum(), 5830)

    def test_to_df_empty(self) -> None:
        df = self.rel.filter(lambda tup: False).to_df()
        self.assertEqual(list(df.columns), ["country", "city", "pop_total", "tz_name"])
        self.assertEqual(len(df), 0)

    def test_assoc(self) -> None:
        self.assertEqual(self.rel.assoc("city", "pop_total")["Brno"], 380)
        nested = self.rel.assoc("country", "city", "pop_total")
        self.assertEqual(nested["cz"], {"Prague": 1300, "Brno": 380})

    def test_assoc_duplicates(self) -> None:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            result = self.rel.assoc("country", "city")
        self.assertEqual(result["cz"], "Prague", "First entry should be kept")
        self.assertEqual(len(caught), 1)
        self.assertTrue(issubclass(caught[0].category, DuplicateKeyWarning))

    def test_map(self) -> None:
        by_city = self.rel.map("city")
        self.assertEqual(by_city["Lisbon"].country, "pt")
        nested = self.rel.map("country", "city")
        self.assertEqual(nested["cz"]["Brno"].pop_total, 380)

    def test_multimap(self) -> None:
        by_country = self.rel.multimap("country")
        self.assertEqual(len(by_country["cz"]), 2)
        self.assertEqual(by_country["cz"].col("city").values(), ["Prague", "Brno"])
        nested = self.rel.multimap("tz_name", "country")
        self.assertEqual(nested["CET"]["de"].value("city"), "Berlin")


if __name__ == "__main__":
    unittest.main()
