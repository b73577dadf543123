"""Tests for the generation of SQL from recipes.

The tests here mainly act as regression tests to ensure that placeholder values are serialized by the correct types and
serializers, and that refined relation recipes wrap their base query correctly. No database is required.
"""
from __future__ import annotations

import datetime
import unittest

from ivory import InvalidStateError, SqlCommandRecipe, SqlRelationRecipe, UndefinedTypeError
from tests import regression_suite
from tests.regression_suite import catalog_type


class PatternRecipeTests(regression_suite.SqlTestCase):
    def setUp(self) -> None:
        extra = [catalog_type(50000, "posint", "d", schema="public", base_oid=23)]
        self.types = regression_suite.offline_type_dictionary(extra)

    def test_positional_params(self) -> None:
        recipe = SqlRelationRecipe.from_pattern("SELECT * FROM %ident WHERE id = %i AND nickname = %s",
                                                "person", 42, "O'Neil")
        self.assertSqlEqual(recipe.to_sql(self.types),
                            "SELECT * FROM person WHERE id = 42 AND nickname = 'O''Neil'")

    def test_named_params(self) -> None:
        recipe = SqlRelationRecipe.from_pattern("SELECT %i:x + %:x", x=5)
        self.assertSqlEqual(recipe.to_sql(self.types), "SELECT 5 + 5")
        recipe.set_param("x", 7)
        self.assertSqlEqual(recipe.to_sql(self.types), "SELECT 7 + 7")

    def test_inferred_types(self) -> None:
        recipe = SqlRelationRecipe.from_pattern("SELECT %:a, %:b, %:c", a=1.5, b=None, c=[1, 2])
        self.assertSqlEqual(recipe.to_sql(self.types), "SELECT 1.5, NULL, '{1,2}'::pg_catalog.int8[]")

    def test_loose_type_mode(self) -> None:
        day = datetime.date(2020, 1, 1)
        strict = SqlRelationRecipe.from_pattern("SELECT %date", day)
        loose = SqlRelationRecipe.from_pattern("SELECT %date?", day)
        self.assertSqlEqual(strict.to_sql(self.types), "SELECT '2020-01-01'::pg_catalog.date")
        self.assertSqlEqual(loose.to_sql(self.types), "SELECT '2020-01-01'")

    def test_repeated_named_params(self) -> None:
        with self.subTest("Different types"):
            recipe = SqlRelationRecipe.from_pattern("SELECT %int:x, %text:x", x=1)
            self.assertSqlEqual(recipe.to_sql(self.types), "SELECT 1, '1'")

        with self.subTest("Strict and loose type mode"):
            recipe = SqlRelationRecipe.from_pattern("SELECT %date:d, %date?:d", d=datetime.date(2020, 1, 1))
            self.assertSqlEqual(recipe.to_sql(self.types),
                                "SELECT '2020-01-01'::pg_catalog.date, '2020-01-01'")

        with self.subTest("Typed and inferred"):
            recipe = SqlRelationRecipe.from_pattern("SELECT %:n, %s:n", n=7)
            self.assertSqlEqual(recipe.to_sql(self.types), "SELECT 7, '7'")

    def test_type_names(self) -> None:
        with self.subTest("Schema-qualified type"):
            recipe = SqlRelationRecipe.from_pattern("SELECT %public.posint", 5)
            self.assertSqlEqual(recipe.to_sql(self.types), "SELECT 5::public.posint")

        with self.subTest("Type from the search path"):
            recipe = SqlRelationRecipe.from_pattern("SELECT %posint", 5)
            self.assertSqlEqual(recipe.to_sql(self.types), "SELECT 5::public.posint")

        with self.subTest("Array type"):
            recipe = SqlRelationRecipe.from_pattern("SELECT %int[]", [1, None])
            self.assertSqlEqual(recipe.to_sql(self.types), "SELECT '{1,NULL}'::pg_catalog.int4[]")

        with self.subTest("Braced type"):
            recipe = SqlRelationRecipe.from_pattern("SELECT %{double precision}", 0.5)
            self.assertSqlEqual(recipe.to_sql(self.types), "SELECT 0.5")

        with self.subTest("Unknown type"):
            recipe = SqlRelationRecipe.from_pattern("SELECT %nonexistent", 1)
            with self.assertRaises(UndefinedTypeError):
                recipe.to_sql(self.types)

    def test_value_serializers(self) -> None:
        cases = [
            ("%ident", ("public", "Person"), 'public."Person"'),
            ("%qident", "person", '"person"'),
            ("%sql", "now()", "now()"),
            ("%like", "50%_off", r"'50\%\_off'"),
            ("%like_", "abc", "'abc%'"),
            ("%_like", "abc", "'%abc'"),
            ("%_like_", "a\\b", r"'%a\\b%'"),
        ]
        for placeholder, value, expected in cases:
            with self.subTest("Serializer", placeholder=placeholder):
                recipe = SqlRelationRecipe.from_pattern(f"SELECT {placeholder}", value)
                self.assertSqlEqual(recipe.to_sql(self.types), f"SELECT {expected}")

    def test_nested_recipes(self) -> None:
        inner = SqlRelationRecipe.from_pattern("SELECT id FROM person WHERE age > %i", 18)
        outer = SqlRelationRecipe.from_pattern("SELECT count(*) FROM (%rel) t", inner)
        self.assertSqlEqual(outer.to_sql(self.types),
                            "SELECT count(*) FROM (SELECT id FROM person WHERE age > 18) t")

        command = SqlCommandRecipe.from_pattern("DELETE FROM person WHERE id = %i", 1)
        explain = SqlCommandRecipe.from_pattern("EXPLAIN %cmd", command)
        self.assertSqlEqual(explain.to_sql(self.types), "EXPLAIN DELETE FROM person WHERE id = 1")

    def test_plain_sql(self) -> None:
        recipe = SqlRelationRecipe.from_sql("SELECT '100%'")
        self.assertSqlEqual(recipe.to_sql(self.types), "SELECT '100%'")

    def test_param_errors(self) -> None:
        with self.assertRaises(ValueError):
            SqlRelationRecipe.from_pattern("SELECT %i, %i", 1)
        with self.assertRaises(ValueError):
            SqlRelationRecipe.from_pattern("SELECT %i:x", y=1)

        recipe = SqlRelationRecipe.from_pattern("SELECT %i:x")
        with self.assertRaises(InvalidStateError):
            recipe.to_sql(self.types)
        with self.assertRaises(ValueError):
            recipe.set_param("y", 1)


class FragmentRecipeTests(regression_suite.SqlTestCase):
    def setUp(self) -> None:
        self.types = regression_suite.offline_type_dictionary()

    def test_fragments(self) -> None:
        recipe = SqlRelationRecipe.from_fragments("SELECT * FROM person WHERE id = %i", 42, "AND is_active")
        self.assertSqlEqual(recipe.to_sql(self.types), "SELECT * FROM person WHERE id = 42 AND is_active")

    def test_fragment_offsets(self) -> None:
        recipe = SqlRelationRecipe.from_fragments("SELECT %i,", 1, "%s", "a", "\nFROM person")
        self.assertSqlEqual(recipe.to_sql(self.types), "SELECT 1, 'a'\nFROM person")

    def test_shared_named_params(self) -> None:
        recipe = SqlRelationRecipe.from_fragments("SELECT %i:x", "+ %:x")
        recipe.set_param("x", 1)
        self.assertSqlEqual(recipe.to_sql(self.types), "SELECT 1 + 1")

    def test_fragment_errors(self) -> None:
        with self.assertRaises(TypeError):
            SqlRelationRecipe.from_fragments("SELECT %i", 1, 2)
        with self.assertRaises(ValueError):
            SqlRelationRecipe.from_fragments("SELECT %i, %i", 1)


class RefinedRecipeTests(regression_suite.SqlTestCase):
    def setUp(self) -> None:
        self.types = regression_suite.offline_type_dictionary()
        self.base = SqlRelationRecipe.from_pattern("SELECT * FROM person WHERE nickname = %s", "x")
        self.base_sql = "SELECT * FROM person WHERE nickname = 'x'"

    def test_where(self) -> None:
        refined = self.base.where("age > %i", 30)
        self.assertSqlEqual(refined.to_sql(self.types),
                            f"SELECT *\nFROM (\n{self.base_sql}\n) t\nWHERE age > 30")

    def test_limit(self) -> None:
        self.assertSqlEqual(self.base.limit(10).to_sql(self.types),
                            f"SELECT *\nFROM (\n{self.base_sql}\n) t\nLIMIT 10")
        self.assertSqlEqual(self.base.limit(10, 5).to_sql(self.types),
                            f"SELECT *\nFROM (\n{self.base_sql}\n) t\nLIMIT 10\nOFFSET 5")
        self.assertSqlEqual(self.base.limit(None, 5).to_sql(self.types),
                            f"SELECT *\nFROM (\n{self.base_sql}\n) t\nOFFSET 5")
        with self.assertRaises(ValueError):
            self.base.limit(10, -1)

    def test_sort(self) -> None:
        self.assertSqlEqual(self.base.sort("age DESC").to_sql(self.types),
                            f"SELECT *\nFROM (\n{self.base_sql}\n) t\nORDER BY age DESC")
        refined = self.base.sort(["age", ("abs(score - %i)", 5)])
        self.assertSqlEqual(refined.to_sql(self.types),
                            f"SELECT *\nFROM (\n{self.base_sql}\n) t\nORDER BY age, abs(score - 5)")
        with self.assertRaises(ValueError):
            self.base.sort(["age"], 1)

    def test_chained_refinements(self) -> None:
        refined = self.base.where("age > %i", 30).limit(1)
        self.assertSqlEqual(refined.to_sql(self.types),
                            "SELECT *\nFROM (\nSELECT *\nFROM (\n" + self.base_sql + "\n) t\nWHERE age > 30\n) t\nLIMIT 1")


if __name__ == "__main__":
    unittest.main()
