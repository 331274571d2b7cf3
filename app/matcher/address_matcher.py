from typing import Callable, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from app.models import (
    Confidence,
    ForwardMatchResult,
    InputRecord,
    MatchMethod,
    MatchResult,
    ReferenceAddress,
)

from .input_index import InputIndex
from .names import normalize_name, similarity
from .reference_index import ReferenceIndex


class LevelWeights(NamedTuple):
    province: float
    city: float
    district: float


# 正向单条匹配（局方记录 -> 参考库）三级基本等权
FORWARD_WEIGHTS = LevelWeights(0.33, 0.33, 0.34)
# 反向批量匹配（参考库 -> 局方记录）区县最具体，权重最高
REVERSE_WEIGHTS = LevelWeights(0.25, 0.25, 0.5)

PROVINCE_THRESHOLD = 0.8
CITY_THRESHOLD = 0.8
# 区县误配对下游伤害最大，门槛更高
DISTRICT_THRESHOLD = 0.85

_METHOD_RANK = {"none": 0, "fuzzy": 1, "exact": 2, "code": 3}

Normalizer = Callable[[str], str]


def best_method(methods: Iterable[MatchMethod]) -> MatchMethod:
    """各层匹配方式取最优: code > exact > fuzzy > none。"""
    best: MatchMethod = "none"
    for method in methods:
        if _METHOD_RANK[method] > _METHOD_RANK[best]:
            best = method
    return best


def confidence_for(score: float) -> Confidence:
    if score >= 0.9:
        return "high"
    if score >= 0.6:
        return "medium"
    if score > 0:
        return "low"
    return "none"


def needs_confirmation(confidence: Confidence) -> bool:
    return confidence in ("low", "none")


# ---------------------------------------------------------------------------
# 正向: 一条局方记录 -> 参考库中的省/市/区县
# ---------------------------------------------------------------------------


def _best_fuzzy(name: str, entries: Sequence, threshold: float) -> Optional[Tuple[object, MatchMethod]]:
    target = normalize_name(name)
    if not target:
        return None

    best = None
    best_score = 0.0
    for entry in entries:
        score = similarity(target, normalize_name(entry.name))
        if score >= threshold and score > best_score:
            best = entry
            best_score = score

    if best is None:
        return None
    method: MatchMethod = "exact" if normalize_name(best.name) == target else "fuzzy"
    return best, method


def _match_scoped(name: str, code: str, entries: Sequence, code_hit, threshold: float):
    if code_hit is not None:
        return code_hit, "code"
    if name:
        for entry in entries:
            if entry.name == name:
                return entry, "exact"
    return _best_fuzzy(name, entries, threshold)


def match_forward(record: InputRecord, index: ReferenceIndex) -> ForwardMatchResult:
    """
    逐级把一条局方记录匹配到参考库:
    省份在全部省份里找；城市只在已命中省份下找；区县只在已命中城市下找。
    每级依次尝试 编码 -> 精确名称 -> 标准化/模糊名称，命中即计入该级全部权重。
    """
    weights = FORWARD_WEIGHTS
    score = 0.0
    methods: List[MatchMethod] = []
    found = {}

    province_hit = _match_scoped(
        record.province_name,
        record.province_code,
        index.all_provinces(),
        index.province_for_code(record.province_code),
        PROVINCE_THRESHOLD,
    )
    if province_hit:
        province, method = province_hit
        found.update(province_code=province.code, province_name=province.name)
        score += weights.province
        methods.append(method)

        city_hit = _match_scoped(
            record.city_name,
            record.city_code,
            index.cities_in(province.code),
            index.city_for_code(province.code, record.city_code),
            CITY_THRESHOLD,
        )
        if city_hit:
            city, method = city_hit
            found.update(city_code=city.code, city_name=city.name)
            score += weights.city
            methods.append(method)

            district_hit = _match_scoped(
                record.district_name,
                record.district_code,
                index.districts_in(city.code),
                index.district_for_code(city.code, record.district_code),
                DISTRICT_THRESHOLD,
            )
            if district_hit:
                district, method = district_hit
                found.update(district_code=district.code, district_name=district.name)
                score += weights.district
                methods.append(method)

    score = round(score, 4)
    confidence = confidence_for(score)
    return ForwardMatchResult(
        reference=ReferenceAddress(**found),
        score=score,
        method=best_method(methods),
        confidence=confidence,
        needs_confirmation=needs_confirmation(confidence),
    )


# ---------------------------------------------------------------------------
# 反向: 参考库中的一条组合地址 -> 候选局方记录里最好的一条
# ---------------------------------------------------------------------------


class LevelMatch(NamedTuple):
    contribution: float
    method: MatchMethod


class ScoredCandidate(NamedTuple):
    record: InputRecord
    score: float
    method: MatchMethod
    district_exact: bool


def _score_level(
    ref_code: str,
    ref_name: str,
    ref_normalized: str,
    input_code: str,
    input_name: str,
    normalize: Normalizer,
    weight: float,
    threshold: float,
) -> Optional[LevelMatch]:
    if input_code and input_code == ref_code:
        return LevelMatch(weight, "code")
    if not input_name or not ref_name:
        return None
    if input_name == ref_name:
        return LevelMatch(weight, "exact")

    input_normalized = normalize(input_name)
    if not input_normalized or not ref_normalized:
        return None
    if input_normalized == ref_normalized:
        return LevelMatch(weight, "exact")

    score = similarity(input_normalized, ref_normalized)
    if score >= threshold:
        return LevelMatch(weight * score, "fuzzy")
    return None


def score_candidate(
    address: ReferenceAddress,
    record: InputRecord,
    normalize: Normalizer = normalize_name,
    weights: LevelWeights = REVERSE_WEIGHTS,
) -> ScoredCandidate:
    """
    按 省 -> 市 -> 区县 的顺序给一条局方记录打分。
    上一级没有命中时不再看下一级，避免不同省份的同名区县被误配。
    """
    levels: List[LevelMatch] = []
    district_exact = False

    province = _score_level(
        address.province_code,
        address.province_name,
        normalize(address.province_name),
        record.province_code,
        record.province_name,
        normalize,
        weights.province,
        PROVINCE_THRESHOLD,
    )
    if province:
        levels.append(province)
        city = _score_level(
            address.city_code,
            address.city_name,
            normalize(address.city_name),
            record.city_code,
            record.city_name,
            normalize,
            weights.city,
            CITY_THRESHOLD,
        )
        if city:
            levels.append(city)
            district = _score_level(
                address.district_code,
                address.district_name,
                normalize(address.district_name),
                record.district_code,
                record.district_name,
                normalize,
                weights.district,
                DISTRICT_THRESHOLD,
            )
            if district:
                levels.append(district)
                district_exact = district.method in ("code", "exact")

    score = round(sum(level.contribution for level in levels), 4)
    return ScoredCandidate(
        record=record,
        score=score,
        method=best_method(level.method for level in levels),
        district_exact=district_exact,
    )


def select_best(candidates: Iterable[ScoredCandidate]) -> Optional[ScoredCandidate]:
    """
    区县精确命中（编码 / 名称 / 标准化名称相同）的候选整体优先，
    不论其总分是否低于其他候选；组内取最高分，同分保留先出现的。
    """
    scored = [c for c in candidates if c.score > 0]
    pool = [c for c in scored if c.district_exact] or scored

    best: Optional[ScoredCandidate] = None
    for cand in pool:
        if best is None or cand.score > best.score:
            best = cand
    return best


def match_reference_address(address: ReferenceAddress, index: InputIndex) -> MatchResult:
    exact = index.exact_code_match(address)
    if exact is not None:
        return MatchResult(matched=exact, score=1.0, method="code", confidence="high")

    best = select_best(
        score_candidate(address, record, index.normalize)
        for record in index.candidates(address)
    )
    if best is None:
        return MatchResult(matched=None, score=0.0, method="none", confidence="none")

    return MatchResult(
        matched=best.record,
        score=best.score,
        method=best.method,
        confidence=confidence_for(best.score),
    )
