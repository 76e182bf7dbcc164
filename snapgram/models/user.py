# snapgram/models/user.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from snapgram.models.base import SCHEMA_VERSION, load_document
from snapgram.utils.datetime_utils import DateTimeUtils


@dataclass
class User:
    """
    Firestore 'users' 컬렉션의 공개 프로필 문서 구조.
    following / followed_by 는 서로 미러링되는 uid 집합입니다.
    """
    uid: str
    username: str
    username_lower: str = ''
    bio: str = ''
    following: List[str] = field(default_factory=list)
    followed_by: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = field(default_factory=DateTimeUtils.now)
    schema_version: int = SCHEMA_VERSION

    @classmethod
    def from_firestore(cls, data: Dict[str, Any]) -> 'User':
        return load_document(cls, data, required=('uid', 'username'))

    def __post_init__(self):
        if not self.username_lower and self.username:
            self.username_lower = self.username.lower()


@dataclass
class Account:
    """
    Firestore 'accounts' 컬렉션의 로그인 정보 문서 구조.
    공개 프로필과 분리하여 이메일/비밀번호 해시가 노출되지 않도록 합니다.
    """
    uid: str
    email: str
    password_hash: str
    created_at: Optional[datetime] = field(default_factory=DateTimeUtils.now)
    schema_version: int = SCHEMA_VERSION

    @classmethod
    def from_firestore(cls, data: Dict[str, Any]) -> 'Account':
        return load_document(cls, data, required=('uid', 'email', 'password_hash'))
