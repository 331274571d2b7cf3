import io

import pandas as pd
import pytest

from app.models import InputRecord, OutputRecord
from app.spreadsheet import (
    OUTPUT_COLUMNS,
    RESULT_SHEET,
    SpreadsheetError,
    generate_template,
    is_spreadsheet_filename,
    read_matched_records,
    read_records,
    write_results,
)


def _xlsx(rows, columns=None) -> bytes:
    buf = io.BytesIO()
    pd.DataFrame(rows, columns=columns).to_excel(buf, index=False)
    return buf.getvalue()


def _output(**overrides) -> OutputRecord:
    values = dict(
        reference_province_name="福建省",
        matched_province_name="福建",
        matched_province_code="1001",
        reference_city_name="厦门市",
        matched_city_name="厦门",
        matched_city_code="2001",
        reference_district_name="思明区",
        matched_district_name="思明",
        matched_district_code="3007",
        match_score=1.0,
        match_method="code",
        confidence="high",
    )
    values.update(overrides)
    return OutputRecord(**values)


def test_read_records_with_chinese_headers():
    data = _xlsx(
        [
            {
                "省份名称": " 福建省 ",
                "省份编码": "1001",
                "地市名称": "厦门市",
                "地市编码": "2001",
                "区县名称": "思明区",
                "区县编码": "3007",
            }
        ]
    )

    assert read_records(data) == [
        InputRecord(
            province_name="福建省",
            province_code="1001",
            city_name="厦门市",
            city_code="2001",
            district_name="思明区",
            district_code="3007",
        )
    ]


def test_read_records_with_english_keys():
    data = _xlsx([{"province_name": "广东省", "city_name": "深圳市", "district_name": "福田区"}])

    records = read_records(data)

    assert records == [InputRecord(province_name="广东省", city_name="深圳市", district_name="福田区")]


def test_chinese_header_wins_over_english_key():
    data = _xlsx([{"省份名称": "福建省", "province_name": "广东省"}])

    assert read_records(data)[0].province_name == "福建省"


def test_blank_rows_are_dropped():
    data = _xlsx(
        [
            {"省份名称": "福建省", "地市名称": "厦门市"},
            {"省份名称": None, "地市名称": "   "},
            {"省份名称": "广东省", "地市名称": "深圳市"},
        ]
    )

    records = read_records(data)

    assert [r.province_name for r in records] == ["福建省", "广东省"]


def test_codes_keep_leading_zeros():
    data = _xlsx([{"省份名称": "北京市", "省份编码": "0101"}])

    assert read_records(data)[0].province_code == "0101"


def test_headers_only_sheet_yields_no_records():
    data = _xlsx([], columns=["省份名称", "地市名称", "区县名称"])

    assert read_records(data) == []


def test_garbage_bytes_raise_spreadsheet_error():
    with pytest.raises(SpreadsheetError):
        read_records(b"definitely not a workbook")


def test_template_reads_back_as_sample_records():
    records = read_records(generate_template())

    assert [r.district_name for r in records] == ["思明区", "福田区"]
    assert records[0].province_code == "1001"
    assert records[1].district_code == "3473"


def test_export_headers_and_labels():
    data = write_results([_output(), _output(match_score=0.8125, match_method="fuzzy", confidence="medium")])

    df = pd.read_excel(io.BytesIO(data), sheet_name=RESULT_SHEET, dtype=str)

    assert list(df.columns) == [header for header, _, _ in OUTPUT_COLUMNS]
    assert list(df["匹配分数"]) == ["1.00", "0.81"]
    assert list(df["匹配方式"]) == ["编码匹配", "模糊匹配"]
    assert list(df["匹配信心"]) == ["高", "中"]


def test_export_of_unmatched_entry():
    unmatched = _output(
        matched_province_name="",
        matched_province_code="",
        matched_city_name="",
        matched_city_code="",
        matched_district_name="",
        matched_district_code="",
        match_score=0.0,
        match_method="none",
        confidence="none",
    )
    df = pd.read_excel(io.BytesIO(write_results([unmatched])), dtype=str)

    assert df.loc[0, "匹配方式"] == "未匹配"
    assert df.loc[0, "匹配信心"] == "无"
    assert df.loc[0, "省份名称(junbo)"] == "福建省"


def test_exported_matches_read_back_as_input_records():
    unmatched = _output(
        matched_province_name="",
        matched_province_code="",
        matched_city_name="",
        matched_city_code="",
        matched_district_name="",
        matched_district_code="",
        match_score=0.0,
        match_method="none",
        confidence="none",
    )
    records = read_matched_records(write_results([_output(), unmatched]))

    assert records == [
        InputRecord(
            province_name="福建",
            province_code="1001",
            city_name="厦门",
            city_code="2001",
            district_name="思明",
            district_code="3007",
        )
    ]


def test_read_matched_records_requires_export_columns():
    with pytest.raises(SpreadsheetError):
        read_matched_records(generate_template())


@pytest.mark.parametrize(
    "filename, accepted",
    [
        ("addresses.xlsx", True),
        ("ADDRESSES.XLSX", True),
        ("macro.xlsm", True),
        ("legacy.xls", False),
        ("addresses.csv", False),
        ("xlsx", False),
        ("", False),
    ],
)
def test_is_spreadsheet_filename(filename, accepted):
    assert is_spreadsheet_filename(filename) is accepted
