import json
import logging
from collections.abc import Mapping
from typing import Any, List, Optional, Tuple

from app import settings
from app.models import ReferenceAddress

logger = logging.getLogger(__name__)

# 省份表的固定键，其余键都是上一级的编码
ROOT_KEY = "0000"


def _string_entries(table: Any) -> List[Tuple[str, str]]:
    # 值不是字符串的条目（嵌套对象、数字、空串）视为结构异常，直接跳过
    if not isinstance(table, Mapping):
        return []
    entries = []
    for code, name in table.items():
        if not isinstance(name, str) or not name.strip():
            continue
        entries.append((str(code), name))
    return entries


class ReferenceCatalog:
    """
    参考地址库（junbo 地址库）。结构示例:
    {
      "0000": {"1001": "福建省", "1005": "广东省"},
      "1001": {"2001": "厦门市", "2002": "福州市"},
      "2001": {"3007": "思明区", "3008": "湖里区"},
      ...
    }
    "0000" 下是全部省份；以省份编码为键的表是该省的城市；
    以城市编码为键的表是该市的区县。

    加载后只读，整个进程生命周期内不做修改。
    """

    def __init__(self, data: Mapping):
        if not isinstance(data, Mapping):
            raise TypeError(
                f"reference catalog must be a mapping, got {type(data).__name__}"
            )
        self._data = data

    def provinces(self) -> List[Tuple[str, str]]:
        return _string_entries(self._data.get(ROOT_KEY))

    def cities(self, province_code: str) -> List[Tuple[str, str]]:
        return _string_entries(self._data.get(province_code))

    def districts(self, city_code: str) -> List[Tuple[str, str]]:
        return _string_entries(self._data.get(city_code))


def load_catalog(path: Optional[str] = None) -> ReferenceCatalog:
    data_path = path or settings.CATALOG_PATH
    with open(data_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    catalog = ReferenceCatalog(data)
    logger.info(
        "Loaded reference catalog from %s (%d provinces)",
        data_path,
        len(catalog.provinces()),
    )
    return catalog


def walk_reference_addresses(catalog: ReferenceCatalog) -> List[ReferenceAddress]:
    """
    按 省 -> 市 -> 区县 三级遍历参考库，每个叶子区县生成一条完整组合地址。
    某个城市下没有任何有效区县时，生成一条区县为空的组合地址，
    保证该城市仍会出现在匹配结果里。
    """
    addresses: List[ReferenceAddress] = []
    for prov_code, prov_name in catalog.provinces():
        for city_code, city_name in catalog.cities(prov_code):
            districts = catalog.districts(city_code)
            if not districts:
                addresses.append(
                    ReferenceAddress(
                        province_code=prov_code,
                        province_name=prov_name,
                        city_code=city_code,
                        city_name=city_name,
                    )
                )
                continue
            for dist_code, dist_name in districts:
                addresses.append(
                    ReferenceAddress(
                        province_code=prov_code,
                        province_name=prov_name,
                        city_code=city_code,
                        city_name=city_name,
                        district_code=dist_code,
                        district_name=dist_name,
                    )
                )
    return addresses
