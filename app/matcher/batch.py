import logging
import threading
import time
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor, as_completed
from functools import lru_cache
from typing import Callable, List, Optional, Sequence, Tuple, Union

from pypinyin import lazy_pinyin

from app import settings
from app.models import (
    AddressMatchResult,
    ForwardMatchResult,
    InputRecord,
    MatchResult,
    OutputRecord,
    ReferenceAddress,
)

from .address_matcher import match_forward, match_reference_address, needs_confirmation
from .catalog import ReferenceCatalog, walk_reference_addresses
from .input_index import InputIndex
from .reference_index import build_reference_index, index_sizes

logger = logging.getLogger(__name__)

COLLATIONS = settings.SORT_COLLATIONS


class MatchCancelled(Exception):
    """批量匹配在分片之间检测到取消信号。"""


@lru_cache(maxsize=4096)
def _pinyin(name: str) -> str:
    return " ".join(lazy_pinyin(name))


def _codepoint_key(result: AddressMatchResult) -> tuple:
    return result.output.sort_key()


def _pinyin_key(result: AddressMatchResult) -> tuple:
    return tuple((_pinyin(name), name) for name in result.output.sort_key())


def _sort_key_for(collation: str) -> Callable[[AddressMatchResult], tuple]:
    if collation == "codepoint":
        return _codepoint_key
    if collation == "pinyin":
        return _pinyin_key
    raise ValueError(
        f"unknown collation {collation!r}, expected one of {', '.join(COLLATIONS)}"
    )


def _coerce_records(records) -> List[InputRecord]:
    if not isinstance(records, (list, tuple)):
        raise TypeError(
            f"input records must be a list, got {type(records).__name__}"
        )
    return [
        rec if isinstance(rec, InputRecord) else InputRecord.model_validate(rec)
        for rec in records
    ]


def build_result(address: ReferenceAddress, result: MatchResult) -> AddressMatchResult:
    matched = result.matched or InputRecord()
    output = OutputRecord(
        reference_province_name=address.province_name,
        matched_province_name=matched.province_name,
        matched_province_code=matched.province_code,
        reference_city_name=address.city_name,
        matched_city_name=matched.city_name,
        matched_city_code=matched.city_code,
        reference_district_name=address.district_name,
        matched_district_name=matched.district_name,
        matched_district_code=matched.district_code,
        match_score=result.score,
        match_method=result.method,
        confidence=result.confidence,
    )
    return AddressMatchResult(
        input=matched,
        output=output,
        needs_confirmation=needs_confirmation(result.confidence),
    )


class Matcher:
    """
    以参考库为准的地址匹配器。构造时建好参考库索引并展开全部组合地址，
    之后只读，可以被任意多个批次（包括并发批次）共享。
    """

    def __init__(self, catalog: ReferenceCatalog):
        if not isinstance(catalog, ReferenceCatalog):
            raise TypeError(
                f"expected ReferenceCatalog, got {type(catalog).__name__}"
            )
        self.catalog = catalog
        self.index = build_reference_index(catalog)
        self._addresses: Tuple[ReferenceAddress, ...] = tuple(
            walk_reference_addresses(catalog)
        )
        provinces, cities, districts = index_sizes(self.index)
        logger.info(
            "Matcher ready: %d provinces, %d cities, %d districts, %d reference addresses",
            provinces,
            cities,
            districts,
            len(self._addresses),
        )

    @property
    def reference_addresses(self) -> Tuple[ReferenceAddress, ...]:
        return self._addresses

    def match(self, record: Union[InputRecord, dict]) -> ForwardMatchResult:
        if not isinstance(record, InputRecord):
            record = InputRecord.model_validate(record)
        return match_forward(record, self.index)

    def _match_chunk(
        self,
        chunk: Sequence[ReferenceAddress],
        index: InputIndex,
        cancel_event: Optional[threading.Event],
    ) -> List[AddressMatchResult]:
        if cancel_event is not None and cancel_event.is_set():
            raise MatchCancelled("batch match cancelled")
        return [
            build_result(address, match_reference_address(address, index))
            for address in chunk
        ]

    def batch_match(
        self,
        records: Sequence[InputRecord],
        *,
        chunk_size: Optional[int] = None,
        workers: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
        collation: Optional[str] = None,
    ) -> List[AddressMatchResult]:
        """
        把参考库里的每一条组合地址与局方记录匹配，每条组合地址恰好产出一条结果。

        分片只是为了控制吞吐和内存；workers > 1 时分片在线程池里执行，
        完成顺序不确定，最终统一按 省 -> 市 -> 区县 名称排序，输出与分片方式无关。
        cancel_event 在每个分片开始前检查，被置位时抛出 MatchCancelled。
        """
        records = _coerce_records(records)
        size = settings.MATCH_CHUNK_SIZE if chunk_size is None else chunk_size
        pool_size = settings.MATCH_WORKERS if workers is None else workers
        sort_key = _sort_key_for(
            settings.MATCH_SORT_COLLATION if collation is None else collation
        )
        if size < 1 or pool_size < 1:
            raise ValueError("chunk_size and workers must be >= 1")

        started = time.perf_counter()
        index = InputIndex(records)
        addresses = self._addresses
        chunks = [addresses[i:i + size] for i in range(0, len(addresses), size)]

        results: List[AddressMatchResult] = []
        if pool_size <= 1:
            for n, chunk in enumerate(chunks, start=1):
                results.extend(self._match_chunk(chunk, index, cancel_event))
                logger.debug("chunk %d/%d done", n, len(chunks))
        else:
            # 按分片序号归位，同名条目之间的先后不受完成顺序影响
            slots: List[List[AddressMatchResult]] = [[] for _ in chunks]
            with ThreadPoolExecutor(max_workers=pool_size) as executor:
                future_map = {
                    executor.submit(self._match_chunk, chunk, index, cancel_event): n
                    for n, chunk in enumerate(chunks)
                }
                for future in as_completed(future_map):
                    slots[future_map[future]] = future.result()
            for slot in slots:
                results.extend(slot)

        results.sort(key=sort_key)
        logger.info(
            "Batch matched %d reference addresses against %d input records in %.3fs",
            len(results),
            len(records),
            time.perf_counter() - started,
        )
        return results


def create_matcher(catalog: Union[ReferenceCatalog, Mapping]) -> Matcher:
    if isinstance(catalog, Mapping):
        catalog = ReferenceCatalog(catalog)
    return Matcher(catalog)
