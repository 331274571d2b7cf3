from app.matcher.input_index import NAME_PROBE_THRESHOLD, InputIndex, NameCache
from app.models import InputRecord, ReferenceAddress

SIMING = ReferenceAddress(
    province_code="1001",
    province_name="福建省",
    city_code="2001",
    city_name="厦门市",
    district_code="3007",
    district_name="思明区",
)


def test_exact_code_match_uses_full_tuple():
    full = InputRecord(province_code="1001", city_code="2001", district_code="3007")
    partial = InputRecord(province_code="1001", city_code="2001")
    index = InputIndex([partial, full])

    assert index.exact_code_match(SIMING) is full
    assert index.exact_code_match(SIMING.model_copy(update={"district_code": "3008"})) is None


def test_exact_code_match_keeps_first_record():
    first = InputRecord(province_code="1001", city_code="2001", district_code="3007", district_name="思明")
    second = InputRecord(province_code="1001", city_code="2001", district_code="3007", district_name="思明区")
    index = InputIndex([first, second])

    assert index.exact_code_match(SIMING) is first


def test_candidates_probe_codes_from_district_up():
    by_province = InputRecord(province_code="1001")
    by_city = InputRecord(city_code="2001")
    by_district = InputRecord(district_code="3007")
    unrelated = InputRecord(province_code="1005", province_name="广东省")
    index = InputIndex([by_province, by_city, by_district, unrelated])

    assert index.candidates(SIMING) == [by_district, by_city, by_province]


def test_candidates_fall_back_to_normalized_names():
    named = InputRecord(province_name="福建", city_name="厦门", district_name="思明")
    other = InputRecord(province_name="广东", city_name="深圳", district_name="福田")
    index = InputIndex([other, named])

    assert index.candidates(SIMING) == [named]


def test_candidates_skip_name_probe_when_codes_suffice():
    coded = [InputRecord(province_code="1001", city_name=f"城市{i}") for i in range(NAME_PROBE_THRESHOLD)]
    named_only = InputRecord(province_name="福建省", city_name="厦门市", district_name="思明区")
    index = InputIndex(coded + [named_only])

    candidates = index.candidates(SIMING)

    assert named_only not in candidates
    assert len(candidates) == NAME_PROBE_THRESHOLD


def test_candidates_are_deduplicated():
    record = InputRecord(
        province_code="1001",
        province_name="福建省",
        city_code="2001",
        district_code="3007",
        district_name="思明区",
    )
    index = InputIndex([record])

    assert index.candidates(SIMING) == [record]


def test_no_shared_code_or_name_yields_no_candidates():
    index = InputIndex([InputRecord(province_name="广东省", province_code="1005")])

    assert index.candidates(SIMING) == []


def test_name_cache_computes_each_name_once():
    cache = NameCache()

    assert cache("厦门市") == "厦门"
    assert cache("厦门市") == "厦门"
    assert cache("") == ""
    assert len(cache) == 1


def test_blank_names_are_not_indexed():
    index = InputIndex([InputRecord(province_code="1001")])

    assert not index.by_province_name
    assert not index.by_city_name
    assert not index.by_district_name
