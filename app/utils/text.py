from __future__ import annotations

import re
from typing import Optional


_NAME_UNSAFE = re.compile(r'[^a-zA-Z0-9 ]')
_NON_DIGITS = re.compile(r'\D')


def clamp_text(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 1] + '...'


def sanitize_customer_name(name: str) -> str:
    return _NAME_UNSAFE.sub('', name or '')


def digits_only(value: Optional[str], max_len: int | None = None) -> str:
    digits = _NON_DIGITS.sub('', value or '')
    if max_len is not None:
        return digits[:max_len]
    return digits


def str_field(data: dict, key: str) -> str:
    value = data.get(key)
    if value is None:
        return ''
    return str(value).strip()
