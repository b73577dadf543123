"""Tests for the type system: parsing and serialization of values, and the lookups of the type dictionary.

All tests run without a database. The type dictionary is compiled from a hand-written excerpt of the system catalog.
"""
from __future__ import annotations

import datetime
import decimal
import enum
import ipaddress
import unittest
import uuid
import warnings

from ivory import EnumItem, PgArray, Range
from ivory.exceptions import EnumLabelWarning, IncomparableError, ParseError, UndefinedTypeError
from ivory.types import (
    ArrayType,
    BinaryType,
    BooleanType,
    CompositeType,
    DateType,
    DecimalType,
    DomainType,
    EnumType,
    FloatType,
    IntegerType,
    JsonType,
    NetAddressType,
    RecordType,
    StrictEnumType,
    StringType,
    TimestampType,
    UndefinedType,
    UuidType,
)
from tests import regression_suite
from tests.regression_suite import catalog_type


class Mood(enum.Enum):
    Sad = "sad"
    Ok = "ok"
    Happy = "happy"


UserCatalog = [
    catalog_type(50000, "posint", "d", schema="public", base_oid=23),
    catalog_type(50001, "pair", "c", schema="public", attributes=[("a", 23), ("b", 25)]),
    catalog_type(50002, "_pair", "A", schema="public", element_oid=50001),
    catalog_type(50003, "mood", "e", schema="public", enum_labels=["sad", "ok", "happy"]),
    catalog_type(50004, "opaque", "b", schema="public"),
]


class StdTypeTests(unittest.TestCase):
    def test_boolean(self) -> None:
        bool_type = BooleanType("pg_catalog", "bool")
        self.assertTrue(bool_type.parse_value("t"))
        self.assertFalse(bool_type.parse_value("off"))
        self.assertIsNone(bool_type.parse_value(None))
        self.assertEqual(bool_type.serialize_value(True), "TRUE")
        self.assertEqual(bool_type.serialize_value(None), "NULL")
        with self.assertRaises(ParseError):
            bool_type.parse_value("maybe")

    def test_integer(self) -> None:
        int_type = IntegerType("pg_catalog", "int4")
        self.assertEqual(int_type.parse_value("-42"), -42)
        self.assertEqual(int_type.serialize_value(42), "42")
        self.assertEqual(int_type.serialize_value(3.0), "3")
        self.assertEqual(int_type.step(2, 5), 7)
        with self.assertRaises(ValueError):
            int_type.serialize_value(3.5)
        with self.assertRaises(ParseError):
            int_type.parse_value("abc")

    def test_float(self) -> None:
        float_type = FloatType("pg_catalog", "float8")
        self.assertEqual(float_type.parse_value("1.5"), 1.5)
        self.assertEqual(float_type.serialize_value(1.5), "1.5")
        self.assertEqual(float_type.serialize_value(float("nan")), "'NaN'::pg_catalog.float8")
        self.assertEqual(float_type.serialize_value(float("-inf"), False), "'-Infinity'")

    def test_decimal(self) -> None:
        numeric_type = DecimalType("pg_catalog", "numeric")
        self.assertEqual(numeric_type.parse_value("1.50"), decimal.Decimal("1.50"))
        self.assertEqual(numeric_type.serialize_value(decimal.Decimal("1.50")), "1.50")
        self.assertEqual(numeric_type.serialize_value(0.1), "0.1")
        self.assertEqual(numeric_type.serialize_value(decimal.Decimal("NaN")), "'NaN'::pg_catalog.numeric")

    def test_string(self) -> None:
        text_type = StringType("pg_catalog", "text")
        self.assertEqual(text_type.parse_value("abc"), "abc")
        self.assertEqual(text_type.serialize_value("O'Neil"), "'O''Neil'")
        self.assertEqual(text_type.serialize_value(42), "'42'")

    def test_binary(self) -> None:
        bytea_type = BinaryType("pg_catalog", "bytea")
        self.assertEqual(bytea_type.parse_value("\\x0102ff"), b"\x01\x02\xff")
        self.assertEqual(bytea_type.parse_value("a\\000b\\\\"), b"a\x00b\\")
        self.assertEqual(bytea_type.serialize_value(b"\x01\xab"), "'\\x01ab'::pg_catalog.bytea")

    def test_date(self) -> None:
        date_type = DateType("pg_catalog", "date")
        self.assertEqual(date_type.parse_value("2020-01-31"), datetime.date(2020, 1, 31))
        self.assertEqual(date_type.parse_value("infinity"), datetime.date.max)
        self.assertEqual(date_type.serialize_value(datetime.date(2020, 1, 31)), "'2020-01-31'::pg_catalog.date")
        self.assertEqual(date_type.serialize_value(datetime.date.min), "'-infinity'::pg_catalog.date")
        self.assertEqual(date_type.step(1, datetime.date(2020, 1, 31)), datetime.date(2020, 2, 1))
        with self.assertRaises(ParseError):
            date_type.parse_value("0044-03-15 BC")
        with self.assertRaises(ValueError):
            date_type.serialize_value(datetime.datetime(2020, 1, 1, 12, 0))

    def test_timestamp(self) -> None:
        ts_type = TimestampType("pg_catalog", "timestamptz")
        parsed = ts_type.parse_value("2020-01-02 03:04:05+01:00")
        self.assertEqual(parsed.utcoffset(), datetime.timedelta(hours=1))
        self.assertEqual(ts_type.serialize_value(datetime.datetime(2020, 1, 2, 3, 4, 5)),
                         "'2020-01-02 03:04:05'::pg_catalog.timestamptz")

    def test_json(self) -> None:
        json_type = JsonType("pg_catalog", "jsonb")
        self.assertEqual(json_type.parse_value('{"a": [1, 2]}'), {"a": [1, 2]})
        self.assertEqual(json_type.serialize_value({"a": "it's"}), """'{"a": "it''s"}'::pg_catalog.jsonb""")
        with self.assertRaises(ParseError):
            json_type.parse_value("{")

    def test_uuid(self) -> None:
        uuid_type = UuidType("pg_catalog", "uuid")
        value = uuid.UUID("12345678-1234-5678-1234-567812345678")
        self.assertEqual(uuid_type.parse_value(str(value)), value)
        self.assertEqual(uuid_type.serialize_value(value), f"'{value}'::pg_catalog.uuid")

    def test_net_address(self) -> None:
        inet_type = NetAddressType("pg_catalog", "inet")
        cidr_type = NetAddressType("pg_catalog", "cidr", network=True)
        self.assertEqual(inet_type.parse_value("192.168.0.1/24"), ipaddress.ip_interface("192.168.0.1/24"))
        self.assertEqual(cidr_type.parse_value("10.0.0.0/8"), ipaddress.ip_network("10.0.0.0/8"))

    def test_undefined_type(self) -> None:
        undefined = UndefinedType("public", "opaque")
        with self.assertRaises(UndefinedTypeError):
            undefined.parse_value("x")
        with self.assertRaises(UndefinedTypeError):
            undefined.serialize_value("x")


class ArrayTypeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.int_array = ArrayType(IntegerType("pg_catalog", "int4"))
        self.text_array = ArrayType(StringType("pg_catalog", "text"))

    def test_name(self) -> None:
        self.assertEqual(self.int_array.name, "int4[]")
        self.assertEqual(self.int_array.schema_name, "pg_catalog")

    def test_parse_simple(self) -> None:
        self.assertEqual(self.int_array.parse_value("{1,2,NULL}"), [1, 2, None])
        self.assertEqual(self.int_array.parse_value("{}"), [])
        self.assertEqual(self.int_array.parse_value(" { 1 , 2 } "), [1, 2])

    def test_parse_multidimensional(self) -> None:
        self.assertEqual(self.int_array.parse_value("{{1,2},{3,4}}"), [[1, 2], [3, 4]])
        with self.assertRaises(ParseError):
            self.int_array.parse_value("{{1},{2,3}}")
        with self.assertRaises(ParseError):
            self.int_array.parse_value("{1,{2}}")

    def test_parse_quoted(self) -> None:
        parsed = self.text_array.parse_value('{"a b","c\\"d",NULL,"NULL"}')
        self.assertEqual(parsed, ["a b", 'c"d', None, "NULL"])

    def test_parse_custom_bounds(self) -> None:
        parsed = self.int_array.parse_value("[0:1]={5,6}")
        self.assertIsInstance(parsed, PgArray)
        self.assertEqual(parsed, [5, 6])
        self.assertEqual(parsed.lower_bounds, (0,))

        plain = ArrayType(IntegerType("pg_catalog", "int4"), plain_mode=True).parse_value("[0:1]={5,6}")
        self.assertNotIsInstance(plain, PgArray)

        with self.assertRaises(ParseError):
            self.int_array.parse_value("[0:2]={5,6}")

    def test_parse_malformed(self) -> None:
        for text in ["{1,2", "1,2}", "{1,,2}", "{1,2}x"]:
            with self.subTest("Malformed array", text=text):
                with self.assertRaises(ParseError):
                    self.int_array.parse_value(text)

    def test_serialize(self) -> None:
        self.assertEqual(self.int_array.serialize_value([1, None, 3]), "'{1,NULL,3}'::pg_catalog.int4[]")
        self.assertEqual(self.int_array.serialize_value([]), "'{}'::pg_catalog.int4[]")
        self.assertEqual(self.int_array.serialize_value([[1, 2], [3, 4]], False), "'{{1,2},{3,4}}'")
        self.assertEqual(self.text_array.serialize_value(["a b", "NULL", 'x"y', "it's"]),
                         r"""'{"a b","NULL","x\"y",it''s}'::pg_catalog.text[]""")

    def test_serialize_custom_bounds(self) -> None:
        self.assertEqual(self.int_array.serialize_value(PgArray([1, 2], [0])), "'[0:1]={1,2}'::pg_catalog.int4[]")

    def test_serialize_invalid(self) -> None:
        with self.assertRaises(ValueError):
            self.int_array.serialize_value([[1, 2], [3]])
        with self.assertRaises(ValueError):
            self.int_array.serialize_value(42)

    def test_serialize_composite_elements(self) -> None:
        pair = CompositeType("public", "pair")
        pair.add_attribute("a", IntegerType("pg_catalog", "int4"))
        pair.add_attribute("b", StringType("pg_catalog", "text"))
        pair_array = ArrayType(pair)
        self.assertEqual(pair_array.serialize_value([(1, "x")]), "ARRAY[(1,'x')::public.pair]::public.pair[]")


class CompositeTypeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.pair = CompositeType("public", "pair")
        self.pair.add_attribute("a", IntegerType("pg_catalog", "int4"))
        self.pair.add_attribute("b", StringType("pg_catalog", "text"))

    def test_parse(self) -> None:
        value = self.pair.parse_value('(1,"a ""q"" b")')
        self.assertEqual(value["a"], 1)
        self.assertEqual(value.b, 'a "q" b')
        self.assertEqual(self.pair.parse_value("(,)").to_map(), {"a": None, "b": None})
        self.assertEqual(self.pair.parse_value('(,"")').b, "")

    def test_parse_wrong_arity(self) -> None:
        with self.assertRaises(ParseError):
            self.pair.parse_value("(1,a,b)")
        with self.assertRaises(ParseError):
            self.pair.parse_value("1,a")

    def test_serialize(self) -> None:
        self.assertEqual(self.pair.serialize_value({"a": 1, "b": "x"}), "(1,'x')::public.pair")
        self.assertEqual(self.pair.serialize_value([1, None], False), "(1,NULL)")
        with self.assertRaises(ValueError):
            self.pair.serialize_value({"c": 1})
        with self.assertRaises(ValueError):
            self.pair.serialize_value([1])

    def test_single_attribute(self) -> None:
        single = CompositeType("public", "single")
        single.add_attribute("a", IntegerType("pg_catalog", "int4"))
        self.assertEqual(single.serialize_value([1]), "ROW(1)::public.single")
        self.assertEqual(single.parse_value("()").a, None)

    def test_duplicate_attribute(self) -> None:
        with self.assertRaises(ValueError):
            self.pair.add_attribute("a", StringType("pg_catalog", "text"))

    def test_compare(self) -> None:
        self.assertLess(self.pair.compare_values((1, "b"), (2, "a")), 0)
        self.assertGreater(self.pair.compare_values((1, "b"), (1, "a")), 0)
        self.assertGreater(self.pair.compare_values((1, None), (1, "a")), 0, "NULL should sort last")

    def test_record(self) -> None:
        record = RecordType("pg_catalog", "record")
        self.assertEqual(record.parse_value('(1,"a b",)'), ("1", "a b", None))


class RangeTypeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.dictionary = regression_suite.offline_type_dictionary()
        self.int4range = self.dictionary.require_type_by_name("int4range")
        self.numrange = self.dictionary.require_type_by_name("numrange")

    def test_parse(self) -> None:
        value = self.int4range.parse_value("[1,5)")
        self.assertEqual((value.lower, value.upper, value.bounds_spec), (1, 5, "[)"))
        self.assertTrue(self.int4range.parse_value("empty").is_empty)
        self.assertIsNone(self.int4range.parse_value("(,5)").lower)

    def test_parse_canonicalizes(self) -> None:
        self.assertEqual(self.int4range.parse_value("[1,5]"), Range.from_bounds(1, 6))
        self.assertEqual(self.numrange.parse_value("[1,5]").bounds_spec, "[]")

    def test_parse_malformed(self) -> None:
        for text in ["1,5", "[1;5)", "[1,5"]:
            with self.subTest("Malformed range", text=text):
                with self.assertRaises(ParseError):
                    self.int4range.parse_value(text)

    def test_serialize(self) -> None:
        self.assertEqual(self.int4range.serialize_value(Range.from_bounds(1, 5)), "pg_catalog.int4range(1,5)")
        self.assertEqual(self.int4range.serialize_value((1, 4)), "pg_catalog.int4range(1,5)")
        self.assertEqual(self.int4range.serialize_value(Range.empty()), "'empty'::pg_catalog.int4range")
        self.assertEqual(self.numrange.serialize_value(Range.from_bounds(decimal.Decimal("1.5"), None, "(]")),
                         "pg_catalog.numrange(1.5,NULL,'()')")

    def test_compare(self) -> None:
        a = self.int4range.parse_value("[1,5)")
        b = self.int4range.parse_value("[2,3)")
        self.assertLess(self.int4range.compare_values(a, b), 0)
        self.assertLess(self.int4range.compare_values(Range.empty(), a), 0, "Empty range should sort first")


class EnumTypeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.mood = EnumType("public", "mood", ["sad", "ok", "happy"])

    def test_parse(self) -> None:
        item = self.mood.parse_value("ok")
        self.assertEqual(item, EnumItem("public", "mood", "ok"))
        self.assertEqual(item.ordinal, 1)

    def test_unknown_label(self) -> None:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            item = self.mood.parse_value("meh")
            self.mood.serialize_value("meh")
        self.assertIsNone(item.ordinal)
        self.assertEqual(len(caught), 2)
        self.assertTrue(all(issubclass(w.category, EnumLabelWarning) for w in caught))

    def test_serialize(self) -> None:
        self.assertEqual(self.mood.serialize_value("happy"), "'happy'::public.mood")
        self.assertEqual(self.mood.serialize_value(self.mood.item("sad"), False), "'sad'")

    def test_order(self) -> None:
        self.assertLess(self.mood.item("sad"), self.mood.item("happy"))
        self.assertLess(self.mood.compare_values(self.mood.item("ok"), self.mood.item("happy")), 0)
        other = EnumType("public", "color", ["red"])
        with self.assertRaises(IncomparableError):
            _ = self.mood.item("sad") < other.item("red")

    def test_strict_enum(self) -> None:
        strict = StrictEnumType("public", "mood", Mood)
        self.assertIs(strict.parse_value("happy"), Mood.Happy)
        self.assertEqual(strict.serialize_value(Mood.Sad), "'sad'::public.mood")
        self.assertLess(strict.compare_values(Mood.Sad, Mood.Happy), 0)
        with self.assertRaises(ParseError):
            strict.parse_value("meh")
        with self.assertRaises(ValueError):
            strict.serialize_value("meh")


class TypeDictionaryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.dictionary = regression_suite.offline_type_dictionary(UserCatalog)

    def test_lookup_by_oid(self) -> None:
        self.assertIsInstance(self.dictionary.require_type_by_oid(23), IntegerType)
        self.assertIsInstance(self.dictionary.require_type_by_oid(1007), ArrayType)
        self.assertIsNone(self.dictionary.find_type_by_oid(999999))
        with self.assertRaises(UndefinedTypeError):
            self.dictionary.require_type_by_oid(999999)

    def test_lookup_by_name(self) -> None:
        self.assertEqual(self.dictionary.require_type_by_name("int").name, "int4")
        self.assertEqual(self.dictionary.require_type_by_name("i").name, "int4")
        self.assertEqual(self.dictionary.require_type_by_name("int[]").name, "int4[]")
        self.assertEqual(self.dictionary.require_type_by_name("pair").schema_name, "public")
        self.assertEqual(self.dictionary.require_type_by_name("int4", "pg_catalog").name, "int4")
        with self.assertRaises(UndefinedTypeError):
            self.dictionary.require_type_by_name("pair", "pg_catalog")
        with self.assertRaises(UndefinedTypeError):
            self.dictionary.require_type_by_name("int", False)

    def test_type_search_path(self) -> None:
        self.dictionary.set_type_search_path(["pg_catalog"])
        self.assertIsNone(self.dictionary.find_type_by_name("pair"))
        self.assertEqual(self.dictionary.type_search_path, ["pg_catalog"])

    def test_user_types(self) -> None:
        domain = self.dictionary.require_type_by_name("posint")
        self.assertIsInstance(domain, DomainType)
        self.assertEqual(domain.parse_value("5"), 5)
        self.assertEqual(domain.serialize_value(5), "5::public.posint")

        pair = self.dictionary.require_type_by_name("pair")
        self.assertEqual(pair.parse_value("(1,x)").to_map(), {"a": 1, "b": "x"})
        self.assertEqual(self.dictionary.require_type_by_name("pair[]").parse_value('{"(1,x)"}')[0].a, 1)

        mood = self.dictionary.require_type_by_name("mood")
        self.assertEqual(mood.labels, ["sad", "ok", "happy"])

        self.assertIsInstance(self.dictionary.require_type_by_name("opaque"), UndefinedType)

    def test_inference(self) -> None:
        cases = [
            (True, "bool"),
            (42, "int8"),
            (2 ** 70, "numeric"),
            (1.5, "float8"),
            (decimal.Decimal("1.5"), "numeric"),
            ("abc", "text"),
            (b"abc", "bytea"),
            (datetime.date(2020, 1, 1), "date"),
            (datetime.datetime(2020, 1, 1), "timestamp"),
            (datetime.datetime(2020, 1, 1, tzinfo=datetime.timezone.utc), "timestamptz"),
            ({"a": 1}, "jsonb"),
            ([1, 2], "int8[]"),
            ([None, [None, "a"]], "text[]"),
            ([], "text[]"),
            (Range.from_bounds(1, 5), "int8range"),
            (Range.from_bounds(datetime.date(2020, 1, 1), None), "daterange"),
            (Range.empty(), "int4range"),
            (EnumItem("public", "mood", "ok"), "mood"),
        ]
        for value, expected in cases:
            with self.subTest("Inferred type", value=value):
                self.assertEqual(self.dictionary.require_type_by_value(value).name, expected)

    def test_inference_failure(self) -> None:
        with self.assertRaises(UndefinedTypeError):
            self.dictionary.require_type_by_value(object())

    def test_undefined_type_handler(self) -> None:
        fallback = StringType("pg_catalog", "text")
        self.dictionary.set_undefined_type_handler(lambda oid, name, schema, value: fallback if name == "x" else None)
        self.assertIs(self.dictionary.require_type_by_name("x"), fallback)
        with self.assertRaises(UndefinedTypeError):
            self.dictionary.require_type_by_name("y")

    def test_value_serializers(self) -> None:
        self.assertIsNotNone(self.dictionary.find_value_serializer("ident"))
        with self.assertRaises(UndefinedTypeError):
            self.dictionary.require_value_serializer("nonexistent")


if __name__ == "__main__":
    unittest.main()
