import pytest

from app.matcher.batch import create_matcher
from app.matcher.catalog import ReferenceCatalog
from app.matcher.reference_index import build_reference_index

CATALOG_DATA = {
    "0000": {
        "1001": "福建省",
        "1005": "广东省",
        "1010": "贵州省",
        "1020": "新疆维吾尔自治区",
    },
    "1001": {"2001": "厦门市", "2002": "福州市"},
    "1005": {"2057": "深圳市"},
    "1010": {"2101": "黔南布依族苗族自治州"},
    "1020": {"2200": "乌鲁木齐市"},
    "2001": {"3007": "思明区", "3008": "湖里区"},
    "2002": {"3020": "鼓楼区"},
    "2057": {"3473": "福田区", "3474": "南山区"},
    "2101": {"3610": "都匀市"},
    "2200": {"3700": "天山区", "3701": "沙依巴克区"},
}

# (省, 市, 区县) 叶子总数
LEAF_COUNT = 8


@pytest.fixture
def catalog():
    return ReferenceCatalog(CATALOG_DATA)


@pytest.fixture
def reference_index(catalog):
    return build_reference_index(catalog)


@pytest.fixture
def matcher(catalog):
    return create_matcher(catalog)
