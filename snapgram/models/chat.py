# snapgram/models/chat.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from snapgram.models.base import SCHEMA_VERSION, load_document


@dataclass
class Chat:
    """
    Firestore 'chats' 컬렉션의 문서 구조.
    문서 ID는 두 참여자 uid를 정렬해 '_'로 이은 값이므로 한 쌍당 하나만 존재합니다.
    participant_usernames는 받은편지함 표시용 비정규화 필드입니다.
    """
    chat_id: str
    participants: List[str]
    last_message: str = ''
    last_sender_id: Optional[str] = None
    last_sent: Optional[datetime] = None
    participant_usernames: Dict[str, str] = field(default_factory=dict)
    schema_version: int = SCHEMA_VERSION

    @classmethod
    def from_firestore(cls, data: Dict[str, Any]) -> 'Chat':
        return load_document(cls, data, required=('chat_id', 'participants'))


@dataclass
class Message:
    """chats/{chat_id}/messages 하위 컬렉션 문서. 추가만 되고 수정/삭제되지 않습니다."""
    message_id: str
    sender_id: str
    sender_username: str
    text: str
    timestamp: Optional[datetime] = None

    @classmethod
    def from_firestore(cls, data: Dict[str, Any]) -> 'Message':
        return load_document(cls, data, required=('message_id', 'sender_id', 'text'))
