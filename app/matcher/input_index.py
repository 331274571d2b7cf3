from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

from app.models import InputRecord, ReferenceAddress

from .names import normalize_name

# 编码索引凑到的候选少于这个数时，再按标准化名称补充候选
NAME_PROBE_THRESHOLD = 10


class NameCache:
    """
    一个批次内的名称标准化缓存（原始名称 -> 标准化名称）。
    同一批次里反复出现的省市名称只有几百个，但会被比较成千上万次。
    normalize_name 是纯函数，并发首次访问时重复计算也只会写入相同的值。
    """

    def __init__(self):
        self._cache: Dict[str, str] = {}

    def __call__(self, name: str) -> str:
        if not name:
            return ""
        cached = self._cache.get(name)
        if cached is None:
            cached = normalize_name(name)
            self._cache[name] = cached
        return cached

    def __len__(self) -> int:
        return len(self._cache)


class InputIndex:
    """
    局方记录的多级索引，每个批次构建一次:
    - 完整编码三元组 -> 记录（精确命中直接短路）
    - 省 / 市 / 区县编码 -> 记录列表
    - 标准化后的省 / 市 / 区县名称 -> 记录列表

    索引里保存的是记录在输入列表中的位置，候选顺序因此只取决于探测顺序和输入顺序。
    """

    def __init__(self, records: Sequence[InputRecord], normalize: Optional[NameCache] = None):
        self.records: List[InputRecord] = list(records)
        self.normalize = normalize or NameCache()

        self.by_code_key: Dict[Tuple[str, str, str], int] = {}
        self.by_province_code: Dict[str, List[int]] = defaultdict(list)
        self.by_city_code: Dict[str, List[int]] = defaultdict(list)
        self.by_district_code: Dict[str, List[int]] = defaultdict(list)
        self.by_province_name: Dict[str, List[int]] = defaultdict(list)
        self.by_city_name: Dict[str, List[int]] = defaultdict(list)
        self.by_district_name: Dict[str, List[int]] = defaultdict(list)

        for pos, rec in enumerate(self.records):
            if rec.province_code and rec.city_code and rec.district_code:
                key = (rec.province_code, rec.city_code, rec.district_code)
                self.by_code_key.setdefault(key, pos)

            if rec.province_code:
                self.by_province_code[rec.province_code].append(pos)
            if rec.city_code:
                self.by_city_code[rec.city_code].append(pos)
            if rec.district_code:
                self.by_district_code[rec.district_code].append(pos)

            for name, table in (
                (rec.province_name, self.by_province_name),
                (rec.city_name, self.by_city_name),
                (rec.district_name, self.by_district_name),
            ):
                normalized = self.normalize(name)
                if normalized:
                    table[normalized].append(pos)

    def __len__(self) -> int:
        return len(self.records)

    def exact_code_match(self, address: ReferenceAddress) -> Optional[InputRecord]:
        if not (address.province_code and address.city_code and address.district_code):
            return None
        pos = self.by_code_key.get(address.code_key())
        if pos is None:
            return None
        return self.records[pos]

    def candidates(self, address: ReferenceAddress) -> List[InputRecord]:
        """
        只取与参考地址至少共享一级编码或一级标准化名称的局方记录。
        探测顺序: 区县编码 -> 城市编码 -> 省份编码；
        候选不足 NAME_PROBE_THRESHOLD 条时再按 区县 -> 城市 -> 省份 名称补充。
        """
        seen: Dict[int, None] = {}

        for code, table in (
            (address.district_code, self.by_district_code),
            (address.city_code, self.by_city_code),
            (address.province_code, self.by_province_code),
        ):
            if code:
                for pos in table.get(code, ()):
                    seen.setdefault(pos, None)

        if len(seen) < NAME_PROBE_THRESHOLD:
            for name, table in (
                (address.district_name, self.by_district_name),
                (address.city_name, self.by_city_name),
                (address.province_name, self.by_province_name),
            ):
                normalized = self.normalize(name)
                if normalized:
                    for pos in table.get(normalized, ()):
                        seen.setdefault(pos, None)

        return [self.records[pos] for pos in seen]
