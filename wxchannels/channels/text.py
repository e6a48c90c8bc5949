"""出站文本分片与截断"""

from typing import List, Optional


def truncate_text(text: str, max_length: int, suffix: str = "...") -> str:
    if max_length <= 0:
        return ""
    if len(text) <= max_length:
        return text
    if max_length <= len(suffix):
        return text[:max_length]
    return text[:max_length - len(suffix)] + suffix


def chunk_text(text: str, limit: int, mode: str = "length") -> List[str]:
    """
    按长度限制切分文本

    Args:
        text: 原始文本
        limit: 每片最大字符数
        mode: "length" 按字符硬切; "newline" 尽量在换行处切分,
              单行超长时退化为硬切

    Returns:
        分片列表,空文本返回 [""]
    """
    if limit <= 0:
        raise ValueError(f"chunk limit must be positive, got {limit}")
    if len(text) <= limit:
        return [text]

    if mode != "newline":
        return [text[i:i + limit] for i in range(0, len(text), limit)]

    chunks: List[str] = []
    current: Optional[str] = None
    for line in text.split("\n"):
        candidate = line if current is None else f"{current}\n{line}"
        if len(candidate) <= limit:
            current = candidate
            continue
        if current:
            chunks.append(current)
        while len(line) > limit:
            chunks.append(line[:limit])
            line = line[limit:]
        current = line
    if current:
        chunks.append(current)
    return chunks
