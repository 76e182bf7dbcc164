# snapgram/utils/datetime_utils.py
"""
프로젝트 전체에서 일관된 시간 처리를 위한 유틸리티 모듈

- 백엔드의 모든 시간은 UTC timezone-aware datetime으로 통일합니다.
- 댓글처럼 배열 안에 저장되는 값은 서버 타임스탬프를 쓸 수 없으므로
  ISO 문자열(클라이언트 시간)로 저장합니다.
- Firestore에서 읽은 Timestamp 값은 datetime으로 정규화합니다.
"""

import logging
from datetime import datetime, date, timezone, time
from typing import Any

from dateutil import parser as dateutil_parser

logger = logging.getLogger(__name__)


class DateTimeUtils:
    """시간/날짜 처리를 위한 중앙화된 유틸리티 클래스"""

    @staticmethod
    def now() -> datetime:
        """현재 시간을 UTC timezone-aware datetime으로 반환"""
        return datetime.now(timezone.utc)

    @staticmethod
    def parse_iso_datetime(iso_string: str) -> datetime:
        """
        ISO 포맷 문자열을 UTC datetime 객체로 파싱

        지원 포맷:
        - 2024-01-15T10:30:00Z
        - 2024-01-15T10:30:00+09:00
        - 2024-01-15T10:30:00.123456Z
        - 2024-01-15T10:30:00 (UTC로 간주)
        """
        try:
            if not iso_string:
                raise ValueError("빈 문자열은 파싱할 수 없습니다")

            if iso_string.endswith('Z'):
                iso_string = iso_string[:-1] + '+00:00'

            dt = dateutil_parser.isoparse(iso_string)
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return dt.astimezone(timezone.utc)

        except Exception as e:
            logger.error(f"ISO datetime 파싱 실패: {iso_string} - {e}")
            raise ValueError(f"잘못된 ISO 날짜 형식입니다: {iso_string}")

    @staticmethod
    def to_iso_string(dt: datetime) -> str:
        """datetime 객체를 'Z' 접미사가 붙은 ISO 문자열로 변환"""
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        else:
            dt = dt.astimezone(timezone.utc)
        return dt.isoformat().replace('+00:00', 'Z')

    @staticmethod
    def now_iso() -> str:
        """댓글 등 클라이언트 기준 시각이 필요한 곳에서 사용하는 현재 시각 문자열"""
        return DateTimeUtils.to_iso_string(DateTimeUtils.now())

    @staticmethod
    def for_firestore(obj: Any) -> Any:
        """
        Firestore 저장을 위해 객체의 날짜/시간 필드를 변환

        - date -> datetime (00:00:00 UTC)
        - timezone-naive datetime -> UTC
        - dict/list 내부 재귀적 변환
        - 그 외 값(서버 타임스탬프, ArrayUnion 등 sentinel 포함)은 그대로 둡니다.
        """
        if isinstance(obj, datetime):
            if obj.tzinfo is None:
                return obj.replace(tzinfo=timezone.utc)
            return obj.astimezone(timezone.utc)
        if isinstance(obj, date):
            return datetime.combine(obj, time.min).replace(tzinfo=timezone.utc)
        if isinstance(obj, dict):
            return {k: DateTimeUtils.for_firestore(v) for k, v in obj.items()}
        if isinstance(obj, list):
            return [DateTimeUtils.for_firestore(item) for item in obj]
        return obj

    @staticmethod
    def from_firestore(obj: Any) -> Any:
        """
        Firestore에서 읽은 데이터의 timestamp 필드를 UTC datetime으로 변환

        DatetimeWithNanoseconds는 datetime의 하위 클래스이므로 같은 규칙을 따릅니다.
        """
        try:
            if isinstance(obj, datetime):
                if obj.tzinfo is None:
                    return obj.replace(tzinfo=timezone.utc)
                return obj.astimezone(timezone.utc)
            if isinstance(obj, dict):
                return {k: DateTimeUtils.from_firestore(v) for k, v in obj.items()}
            if isinstance(obj, list):
                return [DateTimeUtils.from_firestore(item) for item in obj]
            if hasattr(obj, 'timestamp') and callable(obj.timestamp):
                return datetime.fromtimestamp(obj.timestamp(), tz=timezone.utc)
            return obj
        except Exception as e:
            logger.error(f"Firestore 읽기 변환 실패: {obj} ({type(obj)}) - {e}")
            return obj

