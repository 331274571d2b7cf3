from functools import lru_cache

from rapidfuzz.distance import Levenshtein


# 行政区划后缀。复合后缀（民族自治州 / 自治区）必须先于单字后缀处理，
# 否则 "黔南布依族苗族自治州" 只会被剥掉一个 "州" 或留下半截 "自治"。
_ADMIN_SUFFIXES = sorted(
    [
        "布依族苗族自治州",
        "苗族侗族自治州",
        "土家族苗族自治州",
        "壮族苗族自治州",
        "傣族景颇族自治州",
        "哈尼族彝族自治州",
        "蒙古族藏族自治州",
        "藏族羌族自治州",
        "哈萨克族自治州",
        "哈萨克自治州",
        "柯尔克孜自治州",
        "朝鲜族自治州",
        "蒙古族自治州",
        "傈僳族自治州",
        "藏族自治州",
        "彝族自治州",
        "白族自治州",
        "回族自治州",
        "傣族自治州",
        "维吾尔自治区",
        "回族自治区",
        "壮族自治区",
        "特别行政区",
        "自治区",
        "自治州",
        "地区",
        "新区",
        "盟",
        "省",
        "市",
        "区",
        "县",
        "旗",
        "镇",
    ],
    key=len,
    reverse=True,
)

# 去后缀后至少保留两个字，避免 "东区" -> "东"、"沙市区" -> "沙" 这类过度剥离
_MIN_NAME_LEN = 2


@lru_cache(maxsize=8192)
def _strip_admin_suffixes(name: str) -> str:
    result = name.strip()
    stripped = True
    while stripped:
        stripped = False
        for suf in _ADMIN_SUFFIXES:
            if result.endswith(suf) and len(result) - len(suf) >= _MIN_NAME_LEN:
                result = result[: -len(suf)].strip()
                stripped = True
                break
    return result


def normalize_name(name) -> str:
    """
    去掉行政区名称尾部的行政级别后缀，用于同一地名不同写法之间的比较:
    - '福建省' -> '福建'
    - '黔南布依族苗族自治州' -> '黔南'
    - '新疆维吾尔自治区' -> '新疆'
    - '香港特别行政区' -> '香港'
    - '思明区' -> '思明'

    反复剥离直到没有后缀可去，所以 normalize_name(normalize_name(x)) == normalize_name(x)。
    非字符串或空串返回 ''。
    """
    if not name or not isinstance(name, str):
        return ""
    return _strip_admin_suffixes(name)


def similarity(a: str, b: str) -> float:
    """
    0~1 的名称相似度。中文行政区名称之间的差异大多是后缀或常用简称截断，
    所以包含/前缀关系优先于编辑距离:
      '黔南' vs '黔南布依族苗族自治州' -> 去后缀后相等，1.0
      '厦门' vs '厦门市'               -> 去后缀后相等，1.0
      '鼓楼' vs '鼓楼西'               -> 前缀包含，约 0.73
    """
    if not a or not b or not isinstance(a, str) or not isinstance(b, str):
        return 0.0
    if a == b:
        return 1.0

    norm_a = normalize_name(a)
    norm_b = normalize_name(b)
    if norm_a == norm_b:
        return 1.0

    if norm_a in norm_b or norm_b in norm_a:
        shorter, longer = sorted((norm_a, norm_b), key=len)
        ratio = len(shorter) / len(longer)
        if len(shorter) >= 2:
            if longer.startswith(shorter):
                return min(0.95, ratio * 0.95 + 0.1)
            return min(0.9, ratio * 0.9 + 0.05)
        return ratio * 0.8

    max_len = max(len(a), len(b))
    return 1 - Levenshtein.distance(a, b) / max_len
