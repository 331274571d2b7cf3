import io
import logging
import math
import re
from typing import Dict, Iterable, List, Tuple

import pandas as pd
from openpyxl.utils import get_column_letter

from app.models import InputRecord, OutputRecord

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

RESULT_SHEET = "地址映射结果"
TEMPLATE_SHEET = "地址数据"

# 字段 -> 可接受的表头（中文表头优先，其次英文键）
INPUT_HEADERS: Dict[str, Tuple[str, str]] = {
    "province_name": ("省份名称", "province_name"),
    "province_code": ("省份编码", "province_code"),
    "city_name": ("地市名称", "city_name"),
    "city_code": ("地市编码", "city_code"),
    "district_name": ("区县名称", "district_name"),
    "district_code": ("区县编码", "district_code"),
}

# (表头, OutputRecord 字段, 列宽)
OUTPUT_COLUMNS: List[Tuple[str, str, int]] = [
    ("省份名称(junbo)", "reference_province_name", 15),
    ("省份名称(局方)", "matched_province_name", 15),
    ("省份编码(局方)", "matched_province_code", 15),
    ("城市名称(junbo)", "reference_city_name", 15),
    ("城市名称(局方)", "matched_city_name", 15),
    ("城市编码(局方)", "matched_city_code", 15),
    ("区县名称(junbo)", "reference_district_name", 15),
    ("区县名称(局方)", "matched_district_name", 15),
    ("区县编码(局方)", "matched_district_code", 15),
    ("匹配分数", "match_score", 10),
    ("匹配方式", "match_method", 12),
    ("匹配信心", "confidence", 10),
]

# 导出表里局方列 -> InputRecord 字段，用于把确认后的结果重新读回
MATCHED_HEADERS: Dict[str, str] = {
    "province_name": "省份名称(局方)",
    "province_code": "省份编码(局方)",
    "city_name": "城市名称(局方)",
    "city_code": "城市编码(局方)",
    "district_name": "区县名称(局方)",
    "district_code": "区县编码(局方)",
}

METHOD_LABELS = {
    "code": "编码匹配",
    "exact": "精确匹配",
    "fuzzy": "模糊匹配",
    "none": "未匹配",
}

CONFIDENCE_LABELS = {
    "high": "高",
    "medium": "中",
    "low": "低",
    "none": "无",
}

_TEMPLATE_ROWS = [
    {
        "省份名称": "福建省",
        "省份编码": "1001",
        "地市名称": "厦门市",
        "地市编码": "2001",
        "区县名称": "思明区",
        "区县编码": "3007",
    },
    {
        "省份名称": "广东省",
        "省份编码": "1005",
        "地市名称": "深圳市",
        "地市编码": "2057",
        "区县名称": "福田区",
        "区县编码": "3473",
    },
]

_SPREADSHEET_NAME_RE = re.compile(r"\.(xlsx|xlsm)$", re.IGNORECASE)


class SpreadsheetError(ValueError):
    pass


def is_spreadsheet_filename(filename: str) -> bool:
    return bool(filename) and bool(_SPREADSHEET_NAME_RE.search(filename))


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value).strip()


def _read_first_sheet(data: bytes) -> pd.DataFrame:
    try:
        # 全部按文本读取，编码前导零不会丢
        df = pd.read_excel(io.BytesIO(data), sheet_name=0, dtype=str)
    except Exception as exc:
        raise SpreadsheetError("Excel 文件读取失败，请确保文件格式正确") from exc
    df.columns = [str(col).strip() for col in df.columns]
    return df


def read_records(data: bytes) -> List[InputRecord]:
    """
    读取第一个工作表为局方记录。
    每个字段接受中文表头或英文键，两者都有值时以中文表头为准；
    值去首尾空白，整行为空的记录直接丢弃。
    """
    df = _read_first_sheet(data)

    records: List[InputRecord] = []
    for row in df.to_dict(orient="records"):
        values = {}
        for field, headers in INPUT_HEADERS.items():
            value = ""
            for header in headers:
                value = _cell(row.get(header))
                if value:
                    break
            values[field] = value
        record = InputRecord(**values)
        if not record.is_blank():
            records.append(record)

    logger.info("Read %d input records (%d rows)", len(records), len(df))
    return records


def read_matched_records(data: bytes) -> List[InputRecord]:
    """把导出的映射结果里的局方列重新读成局方记录，未匹配的行跳过。"""
    df = _read_first_sheet(data)
    missing = [h for h in MATCHED_HEADERS.values() if h not in df.columns]
    if missing:
        raise SpreadsheetError(f"导出文件缺少列: {', '.join(missing)}")

    records: List[InputRecord] = []
    for row in df.to_dict(orient="records"):
        record = InputRecord(
            **{field: _cell(row.get(header)) for field, header in MATCHED_HEADERS.items()}
        )
        if not record.is_blank():
            records.append(record)
    return records


def _export_row(output: OutputRecord) -> Dict[str, str]:
    row = {}
    for header, attr, _ in OUTPUT_COLUMNS:
        value = getattr(output, attr)
        if attr == "match_score":
            value = f"{value:.2f}"
        elif attr == "match_method":
            value = METHOD_LABELS.get(value, value)
        elif attr == "confidence":
            value = CONFIDENCE_LABELS.get(value, value)
        row[header] = value
    return row


def _write_sheet(df: pd.DataFrame, sheet_name: str, widths: List[int]) -> bytes:
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name=sheet_name)
        worksheet = writer.sheets[sheet_name]
        for i, width in enumerate(widths, start=1):
            worksheet.column_dimensions[get_column_letter(i)].width = width
    return buf.getvalue()


def write_results(outputs: Iterable[OutputRecord]) -> bytes:
    rows = [_export_row(output) for output in outputs]
    df = pd.DataFrame(rows, columns=[header for header, _, _ in OUTPUT_COLUMNS])
    return _write_sheet(df, RESULT_SHEET, [width for _, _, width in OUTPUT_COLUMNS])


def generate_template() -> bytes:
    df = pd.DataFrame(_TEMPLATE_ROWS)
    return _write_sheet(df, TEMPLATE_SHEET, [15] * len(df.columns))
