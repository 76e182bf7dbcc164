# snapgram/models/base.py
"""
Firestore 문서 <-> 데이터클래스 변환의 공통 규칙

모든 문서는 `schema_version` 필드를 가지며, 읽을 때 필수 필드와 버전을 검증합니다.
알 수 없는 필드는 무시합니다(상위 버전에서 추가된 선택 필드 대비).
"""
import logging
from dataclasses import fields
from typing import Any, Dict, Type, TypeVar

from snapgram.core.errors import StoreError
from snapgram.utils.datetime_utils import DateTimeUtils

SCHEMA_VERSION = 1

T = TypeVar('T')


def load_document(cls: Type[T], data: Dict[str, Any], required: tuple) -> T:
    """Firestore에서 읽은 dict를 검증한 뒤 데이터클래스로 변환합니다."""
    if data is None:
        raise StoreError(f"{cls.__name__} 문서가 비어 있습니다.")

    data = DateTimeUtils.from_firestore(data)
    missing = [name for name in required if data.get(name) is None]
    if missing:
        logging.error(f"{cls.__name__} 문서 필수 필드 누락: {missing}")
        raise StoreError(f"{cls.__name__} 문서 형식이 올바르지 않습니다: {', '.join(missing)}")

    version = data.get('schema_version', SCHEMA_VERSION)
    if version > SCHEMA_VERSION:
        raise StoreError(f"지원하지 않는 {cls.__name__} 스키마 버전입니다: {version}")

    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in known})
