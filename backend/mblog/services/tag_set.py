from __future__ import annotations

import re
from typing import Iterable, Iterator


_SPLIT_RE = re.compile(r"[\s,]+")


class TagSet:
    """有序、去重的标签集合。

    标签名包含前导 `#`；展示形式为每个标签后跟一个逗号："#a,#b,"。
    """

    __slots__ = ("_names",)

    def __init__(self, names: Iterable[str] | None = None) -> None:
        self._names: list[str] = []
        for name in names or ():
            self.add(name)

    @classmethod
    def from_string(cls, value: str | None) -> "TagSet":
        """解析 memo.tags 的存储形式。"""
        return cls(part.strip() for part in (value or "").split(",") if part.strip())

    def add(self, name: str) -> bool:
        if not name or name in self._names:
            return False
        self._names.append(name)
        return True

    def remove(self, name: str) -> bool:
        if name not in self._names:
            return False
        self._names.remove(name)
        return True

    def rename(self, old: str, new: str) -> bool:
        """原位置替换；new 已存在时只删除 old。"""
        if old not in self._names:
            return False
        if new in self._names:
            self._names.remove(old)
        else:
            self._names[self._names.index(old)] = new
        return True

    def contains(self, name: str) -> bool:
        return name in self._names

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._names))

    def __len__(self) -> int:
        return len(self._names)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TagSet):
            return NotImplemented
        return set(self._names) == set(other._names)

    def __repr__(self) -> str:
        return f"TagSet({self._names!r})"

    def names(self) -> list[str]:
        return list(self._names)

    def format(self) -> str:
        return "".join(f"{name}," for name in self._names)


def parse_content(content: str | None) -> tuple[TagSet, str]:
    """从正文第一行提取标签，并返回去掉标签后的正文。

    - 只看第一行；按空白/逗号切分，保留以 `#` 开头且长度大于 1 的词；
    - 第一行去掉标签后若为空白，则整行删除；
    - 结果正文首尾去空白。
    """
    text = content or ""
    lines = text.split("\n")
    first_line = lines[0]

    tags = TagSet(
        token for token in _SPLIT_RE.split(first_line) if token.startswith("#") and len(token) > 1
    )
    if not tags:
        return tags, text.strip()

    # 长的先删，避免 "#go" 把 "#golang" 删成 "lang"
    for name in sorted(tags, key=len, reverse=True):
        first_line = first_line.replace(f"{name},", "")
        first_line = first_line.replace(f"{name} ", "")
        first_line = first_line.replace(name, "")

    if first_line.strip():
        lines[0] = first_line
    else:
        lines = lines[1:]
    return tags, "\n".join(lines).strip()
