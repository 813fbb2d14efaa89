import typing as t
from collections.abc import Mapping

KT = t.TypeVar("KT")
VT = t.TypeVar("VT")
RecursiveMapping = VT | Mapping[KT, "RecursiveMapping[KT, VT]"]


def deep_update(
    d1: dict[KT, RecursiveMapping[KT, VT]], d2: Mapping[KT, RecursiveMapping[KT, VT]]
) -> dict[KT, RecursiveMapping[KT, VT]]:
    result = d1.copy()
    for k, v in d2.items():
        if isinstance(v, Mapping) and k in result and isinstance(result[k], Mapping):
            result[k] = deep_update(result[k], v)  # type: ignore
        else:
            result[k] = v
    return result


def redact(value: t.Any, keys: t.Collection[str], replacement: str | None = None) -> t.Any:
    """Recursively drop (or replace) mapping entries whose key is in ``keys``."""
    if isinstance(value, Mapping):
        out: dict[t.Any, t.Any] = {}
        for k, v in t.cast(Mapping[t.Any, t.Any], value).items():
            if isinstance(k, str) and k.lower() in keys:
                if replacement is not None:
                    out[k] = replacement
                continue
            out[k] = redact(v, keys, replacement)
        return out
    if isinstance(value, (list, tuple)):
        return [redact(v, keys, replacement) for v in t.cast(t.Sequence[t.Any], value)]
    return value
