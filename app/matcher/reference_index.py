# app/matcher/reference_index.py

from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional, Tuple

from .catalog import ReferenceCatalog


class ProvinceEntry(NamedTuple):
    code: str
    name: str


class CityEntry(NamedTuple):
    code: str
    name: str
    province_code: str


class DistrictEntry(NamedTuple):
    code: str
    name: str
    province_code: str
    city_code: str


@dataclass
class ReferenceIndex:
    """
    参考库的只读索引:
    - provinces[name] = ProvinceEntry
    - cities[name] = CityEntry
    - districts[name] = DistrictEntry
    名称表用于精确名称查找；同名时保留遍历中先出现的一条。

    区县重名非常普遍（全国有多个 "鼓楼区"、"城关镇"），所以限定上级的查找
    一律走按上级编码分组的表（cities_in / districts_in），不依赖名称表。
    """

    provinces: Dict[str, ProvinceEntry] = field(default_factory=dict)
    cities: Dict[str, CityEntry] = field(default_factory=dict)
    districts: Dict[str, DistrictEntry] = field(default_factory=dict)
    _province_by_code: Dict[str, ProvinceEntry] = field(default_factory=dict)
    _cities_by_province: Dict[str, List[CityEntry]] = field(default_factory=dict)
    _districts_by_city: Dict[str, List[DistrictEntry]] = field(default_factory=dict)

    def all_provinces(self) -> List[ProvinceEntry]:
        return list(self._province_by_code.values())

    def cities_in(self, province_code: str) -> List[CityEntry]:
        return self._cities_by_province.get(province_code, [])

    def districts_in(self, city_code: str) -> List[DistrictEntry]:
        return self._districts_by_city.get(city_code, [])

    def province_for_code(self, code: str) -> Optional[ProvinceEntry]:
        if not code:
            return None
        return self._province_by_code.get(code)

    def city_for_code(self, province_code: str, code: str) -> Optional[CityEntry]:
        if not code:
            return None
        for entry in self.cities_in(province_code):
            if entry.code == code:
                return entry
        return None

    def district_for_code(self, city_code: str, code: str) -> Optional[DistrictEntry]:
        if not code:
            return None
        for entry in self.districts_in(city_code):
            if entry.code == code:
                return entry
        return None


def build_reference_index(catalog: ReferenceCatalog) -> ReferenceIndex:
    if not isinstance(catalog, ReferenceCatalog):
        raise TypeError(
            f"expected ReferenceCatalog, got {type(catalog).__name__}"
        )

    index = ReferenceIndex()

    for prov_code, prov_name in catalog.provinces():
        province = ProvinceEntry(prov_code, prov_name)
        index.provinces.setdefault(prov_name, province)
        index._province_by_code.setdefault(prov_code, province)

        for city_code, city_name in catalog.cities(prov_code):
            city = CityEntry(city_code, city_name, prov_code)
            index.cities.setdefault(city_name, city)
            index._cities_by_province.setdefault(prov_code, []).append(city)

            for dist_code, dist_name in catalog.districts(city_code):
                district = DistrictEntry(dist_code, dist_name, prov_code, city_code)
                index.districts.setdefault(dist_name, district)
                index._districts_by_city.setdefault(city_code, []).append(district)

    return index


def index_sizes(index: ReferenceIndex) -> Tuple[int, int, int]:
    return (
        len(index._province_by_code),
        sum(len(v) for v in index._cities_by_province.values()),
        sum(len(v) for v in index._districts_by_city.values()),
    )
