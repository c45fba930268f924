"""展示用格式化工具：文件大小与时长。"""

from typing import Optional

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_size(size: Optional[int]) -> str:
    """按 1024 进制格式化字节数，保留一位小数；0 或空值返回空字符串。

    >>> format_size(1536)
    '1.5 KB'
    """
    if not size:
        return ""
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{value:.1f} {_SIZE_UNITS[unit]}"


def format_duration(seconds: Optional[int]) -> str:
    """格式化为 ``M:SS``，分钟不设上限（3661 秒为 ``61:01``）。"""
    if not seconds:
        return ""
    total = int(seconds)
    minutes, secs = divmod(total, 60)
    return f"{minutes}:{secs:02d}"
