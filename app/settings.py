import os

# MATCH_SORT_COLLATION 可选值
SORT_COLLATIONS = ("codepoint", "pinyin")
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= 1 else default


def _choice_env(name: str, choices, default: str, *, upper: bool = False) -> str:
    # 不认识的取值回退到默认值，而不是在导入时报错
    raw = os.getenv(name, "").strip()
    raw = raw.upper() if upper else raw.lower()
    return raw if raw in choices else default


_DEFAULT_CATALOG_PATH = os.path.abspath(
    os.path.join(os.path.dirname(__file__), "data", "catalog.json")
)

# 参考地址库（junbo）文件路径，默认使用随包附带的示例库
CATALOG_PATH = os.getenv("CATALOG_PATH", "").strip() or _DEFAULT_CATALOG_PATH

# 批量匹配时每个分片包含的参考地址条数
MATCH_CHUNK_SIZE = _int_env("MATCH_CHUNK_SIZE", 100)

# >1 时分片交给线程池执行，结果最终统一排序
MATCH_WORKERS = _int_env("MATCH_WORKERS", 1)

# codepoint: 按字符码位排序; pinyin: 按拼音排序（接近中文 locale 的顺序）
MATCH_SORT_COLLATION = _choice_env("MATCH_SORT_COLLATION", SORT_COLLATIONS, "codepoint")

LOG_LEVEL = _choice_env("LOG_LEVEL", LOG_LEVELS, "INFO", upper=True)

# 多个 key 用逗号分隔:
# export API_KEYS="test123,anotherKey987"
ALLOWED_API_KEYS = {
    key.strip()
    for key in os.getenv("API_KEYS", "").split(",")
    if key.strip()
}
_TRUTHY = {"1", "true", "yes", "on"}
# 未配置任何 key 时是否放行（本地调试 / 内网部署）
ALLOW_KEYLESS_ACCESS = (
    os.getenv("ALLOW_KEYLESS_ACCESS", "true").lower() in _TRUTHY
)
