# Overview: Pytest coverage for spreadsheet parsing and row validation.

from decimal import Decimal
from io import BytesIO

import pytest
from openpyxl import Workbook

from noor_pos.services import import_parser
from noor_pos.services.import_parser import (
    ColumnMappingError,
    SpreadsheetReadError,
    UnsupportedFileError,
    detect_category,
    map_columns,
    parse_file,
    parse_rows,
)


HEADER = ("Item Details", "BCN", "P1 / DSN", "MRP", "Sale Price", "Unit", "Cl. Qty")


def row(name="SAREE - Banarasi", sku="BCN001", design="D-11", mrp=2500, sale=2000, unit="Pcs", qty=4):
    return (name, sku, design, mrp, sale, unit, qty)


def xlsx_bytes(rows):
    wb = Workbook()
    ws = wb.active
    for r in rows:
        ws.append(list(r))
    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


class TestDetectCategory:
    @pytest.mark.parametrize("name,expected", [
        ("LEHENGA - Bridal Red", "LEHENGA"),
        ("saree - silk", "SAREE"),
        ("RM DRESS-Kids", "RM DRESS"),
        ("SUITS - Cotton", "SUIT"),
        ("Unlabeled Item", None),
        ("", None),
    ])
    def test_detection(self, name, expected):
        assert detect_category(name) == expected


class TestMapColumns:
    def test_maps_all_columns(self):
        assert map_columns(HEADER) == {
            "itemDetails": 0,
            "bcn": 1,
            "designNumber": 2,
            "mrp": 3,
            "salePrice": 4,
            "unit": 5,
            "closingQty": 6,
        }

    def test_header_matching_is_case_and_space_insensitive(self):
        header = ("  ITEM DETAILS ", "bcn", "mrp", "SALE PRICE", "CL. QTY")
        mapping = map_columns(header)
        assert mapping["itemDetails"] == 0
        assert mapping["closingQty"] == 4
        assert "unit" not in mapping

    def test_missing_required_columns(self):
        with pytest.raises(ColumnMappingError) as exc:
            map_columns(("Item Details", "BCN", "MRP"))
        assert str(exc.value) == "Missing required columns: salePrice, closingQty"
        assert exc.value.title == "Column Mapping Error"


class TestParseRows:
    def test_valid_row(self):
        result = parse_rows([HEADER, row()])

        [product] = result.products
        assert product.is_valid
        assert product.row_number == 2
        assert product.sku == "BCN001"
        assert product.mrp == Decimal("2500")
        assert product.sale_price == Decimal("2000")
        assert product.closing_qty == 4
        assert product.detected_category == "SAREE"

    def test_blank_sku_rows_are_skipped_but_row_numbers_track_the_sheet(self):
        result = parse_rows([HEADER, row(sku=""), row(sku="B2")])

        assert [p.row_number for p in result.products] == [3]

    def test_invalid_mrp(self):
        [product] = parse_rows([HEADER, row(mrp="abc")]).products

        assert not product.is_valid
        assert "Invalid MRP" in product.errors

    def test_text_numbers_with_thousand_separators(self):
        [product] = parse_rows([HEADER, row(mrp="1,250", sale="1,000.50", qty="3")]).products

        assert product.is_valid
        assert product.mrp == Decimal("1250")
        assert product.sale_price == Decimal("1000.50")

    def test_blank_numbers_are_zero(self):
        [product] = parse_rows([HEADER, row(mrp=None, sale=None, qty=None)]).products

        assert product.is_valid
        assert product.closing_qty == 0

    def test_closing_quantity_rounds_half_up(self):
        [product] = parse_rows([HEADER, row(qty=2.5)]).products
        assert product.closing_qty == 3

    def test_bounds(self):
        [product] = parse_rows([HEADER, row(mrp=20_000_000, sale=-1, qty=2_000_000)]).products

        assert "MRP exceeds maximum (10000000)" in product.errors
        assert "Invalid Sale Price" in product.errors
        assert "Quantity exceeds maximum (1000000)" in product.errors

    def test_prices_with_more_than_two_decimals_are_rejected(self):
        [product] = parse_rows([HEADER, row(mrp="1234.567", sale="1000.004")]).products

        assert not product.is_valid
        assert "MRP has more than 2 decimal places" in product.errors
        assert "Sale Price has more than 2 decimal places" in product.errors

    def test_trailing_zeros_do_not_count_as_decimals(self):
        [product] = parse_rows([HEADER, row(mrp="1250.500", sale=999.9)]).products

        assert product.is_valid
        assert product.mrp == Decimal("1250.5")
        assert product.sale_price == Decimal("999.9")

    def test_sale_price_above_mrp(self):
        [product] = parse_rows([HEADER, row(mrp=1000, sale=1200)]).products
        assert product.errors == ["Sale Price exceeds MRP"]

    def test_missing_name_and_long_sku(self):
        [product] = parse_rows([HEADER, row(name="", sku="X" * 60)]).products

        assert len(product.sku) == 50
        assert "BCN truncated to 50 chars" in product.errors
        assert "Missing product name" in product.errors

    def test_unit_defaults_to_pcs(self):
        [product] = parse_rows([HEADER, row(unit=None)]).products
        assert product.unit == "Pcs"

    def test_numeric_barcode_from_excel(self):
        [product] = parse_rows([HEADER, row(sku=123456.0)]).products
        assert product.sku == "123456"

    def test_trailing_blank_rows_do_not_count(self):
        result = parse_rows([HEADER, row(), (None,) * 7, ("",) * 7])
        assert result.data_rows == 1
        assert not result.truncated

    def test_empty_sheet(self):
        with pytest.raises(ColumnMappingError):
            parse_rows([])


class TestRowLimit:
    def test_exactly_max_rows_is_fully_processed(self):
        rows = [HEADER] + [row(sku=f"B{i}") for i in range(2000)]
        result = parse_rows(rows)

        assert len(result.products) == 2000
        assert not result.truncated
        assert result.warnings == []

    def test_one_over_max_rows_is_truncated(self):
        rows = [HEADER] + [row(sku=f"B{i}") for i in range(2001)]
        result = parse_rows(rows)

        assert len(result.products) == 2000
        assert result.truncated
        assert result.warnings == [
            "Only the first 2000 rows will be processed. File has 2001 data rows."
        ]


class TestParseFile:
    def test_xlsx(self):
        result = parse_file(xlsx_bytes([HEADER, row(), row(sku="B2", mrp="abc")]), "stock.xlsx")

        assert len(result.products) == 2
        assert len(result.valid_products) == 1
        assert result.to_dict()["invalid"] == 1

    def test_csv_with_bom(self):
        content = (
            "\ufeffItem Details,BCN,MRP,Sale Price,Cl. Qty\n"
            "SUIT - Cotton,S1,900,800,2\n"
        ).encode("utf-8")
        [product] = parse_file(content, "stock.csv").products

        assert product.sku == "S1"
        assert product.detected_category == "SUIT"

    def test_xls_is_rejected(self):
        with pytest.raises(UnsupportedFileError):
            parse_file(b"\xd0\xcf\x11\xe0", "legacy.xls")

    def test_corrupt_xlsx(self):
        with pytest.raises(SpreadsheetReadError):
            parse_file(b"not a zip", "broken.xlsx")


def test_product_slug():
    assert import_parser.product_slug("Bridal Lehenga (Red)", "BCN01") == "bridal-lehenga-red-bcn01"
