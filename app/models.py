from pydantic import BaseModel, ConfigDict, Field
from typing import List, Literal, Optional

MatchMethod = Literal["code", "exact", "fuzzy", "none"]
Confidence = Literal["high", "medium", "low", "none"]


class InputRecord(BaseModel):
    """局方（外部）提供的一条三级地址记录，任意字段都可能为空。"""

    model_config = ConfigDict(frozen=True)

    province_name: str = Field(
        "",
        description="Province name as supplied by the external party / 局方省份名称",
    )
    province_code: str = Field(
        "",
        description="Province code in the external party's coding / 局方省份编码",
    )
    city_name: str = Field(
        "",
        description="City name as supplied by the external party / 局方地市名称",
    )
    city_code: str = Field(
        "",
        description="City code in the external party's coding / 局方地市编码",
    )
    district_name: str = Field(
        "",
        description="District/county name as supplied / 局方区县名称",
    )
    district_code: str = Field(
        "",
        description="District/county code in the external coding / 局方区县编码",
    )

    def is_blank(self) -> bool:
        return not any(
            (
                self.province_name,
                self.province_code,
                self.city_name,
                self.city_code,
                self.district_name,
                self.district_code,
            )
        )


class ReferenceAddress(BaseModel):
    """
    参考地址库（junbo）中的一条省/市/区组合。
    正向单条匹配时可能只命中到省或市，未命中的层级保持空字符串。
    """

    model_config = ConfigDict(frozen=True)

    province_code: str = Field("", description="Reference province code / 参考库省份编码")
    province_name: str = Field("", description="Reference province name / 参考库省份名称")
    city_code: str = Field("", description="Reference city code / 参考库城市编码")
    city_name: str = Field("", description="Reference city name / 参考库城市名称")
    district_code: str = Field("", description="Reference district code / 参考库区县编码")
    district_name: str = Field("", description="Reference district name / 参考库区县名称")

    def code_key(self) -> tuple:
        return (self.province_code, self.city_code, self.district_code)


class MatchResult(BaseModel):
    matched: Optional[InputRecord] = Field(
        None,
        description=(
            "Best input record for the reference address, null when nothing scored / "
            "最佳匹配的局方记录，没有任何候选得分时为 null"
        ),
    )
    score: float = Field(..., ge=0.0, le=1.0, description="Match score 0-1 / 匹配度")
    method: MatchMethod = Field(..., description="code / exact / fuzzy / none / 匹配方式")
    confidence: Confidence = Field(..., description="high / medium / low / none / 匹配信心")


class OutputRecord(BaseModel):
    reference_province_name: str = Field(..., description="省份名称(junbo)")
    matched_province_name: str = Field("", description="省份名称(局方)")
    matched_province_code: str = Field("", description="省份编码(局方)")
    reference_city_name: str = Field(..., description="城市名称(junbo)")
    matched_city_name: str = Field("", description="城市名称(局方)")
    matched_city_code: str = Field("", description="城市编码(局方)")
    reference_district_name: str = Field("", description="区县名称(junbo)")
    matched_district_name: str = Field("", description="区县名称(局方)")
    matched_district_code: str = Field("", description="区县编码(局方)")
    match_score: float = Field(..., description="匹配分数")
    match_method: MatchMethod = Field(..., description="匹配方式")
    confidence: Confidence = Field(..., description="匹配信心")

    def sort_key(self) -> tuple:
        return (
            self.reference_province_name,
            self.reference_city_name,
            self.reference_district_name,
        )


class AddressMatchResult(BaseModel):
    input: InputRecord = Field(
        ...,
        description=(
            "The matched input record, all fields empty when nothing matched / "
            "匹配到的局方记录，未匹配时各字段为空"
        ),
    )
    output: OutputRecord
    needs_confirmation: bool = Field(
        ...,
        description=(
            "True when confidence is low or none and a human should review / "
            "信心为低或无时为 True，需要人工确认"
        ),
    )


class ForwardMatchResult(BaseModel):
    reference: ReferenceAddress = Field(
        ...,
        description=(
            "Reference identity matched level by level, unmatched levels empty / "
            "逐级匹配到的参考库地址，未命中的层级为空"
        ),
    )
    score: float = Field(..., ge=0.0, le=1.0)
    method: MatchMethod
    confidence: Confidence
    needs_confirmation: bool


class BatchMatchRequest(BaseModel):
    records: List[InputRecord] = Field(
        ...,
        description="Input records to reconcile / 待匹配的局方地址记录",
    )


class ExportRequest(BaseModel):
    results: List[AddressMatchResult] = Field(
        ...,
        description="Results to serialise into a workbook / 需要导出的匹配结果",
    )


class UploadResponse(BaseModel):
    results: List[AddressMatchResult]
    original_inputs: List[InputRecord] = Field(
        ...,
        description=(
            "Every input record, including unmatched ones, for selection widgets / "
            "全部局方输入（包含未匹配的），供前端下拉选择"
        ),
    )
    message: str


class ErrorResponse(BaseModel):
    error: str = Field(
        ...,
        description="Machine readable error code / 机器可读错误码",
    )
    message: str = Field(
        ...,
        description="Human readable error message / 人类可读错误说明",
    )
    request_id: Optional[str] = Field(
        None,
        description=(
            "Optional correlation identifier for tracing / 可选的调用追踪 ID"
        ),
    )
    details: Optional[dict] = Field(
        None,
        description="Optional structured error payload / 可选的结构化错误详情",
    )
