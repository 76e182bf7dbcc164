# snapgram/models/post.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from snapgram.models.base import SCHEMA_VERSION, load_document


@dataclass
class Comment:
    """
    Post 문서 내부 comments 배열에 저장되는 댓글.
    배열 원소에는 서버 타임스탬프를 쓸 수 없으므로 timestamp는 ISO 문자열입니다.
    """
    comment_id: str
    user_id: str
    username: str
    text: str
    timestamp: str


@dataclass
class Post:
    """
    Firestore 'posts' 컬렉션의 문서 구조를 정의하는 데이터클래스.
    user_id는 생성 후 변하지 않으며 username은 작성 시점의 스냅샷입니다.
    """
    post_id: str
    user_id: str
    username: str
    caption: str
    image_url: Optional[str] = None
    timestamp: Optional[datetime] = None
    likes: List[str] = field(default_factory=list)
    comments: List[Comment] = field(default_factory=list)
    schema_version: int = SCHEMA_VERSION

    @classmethod
    def from_firestore(cls, data: Dict[str, Any]) -> 'Post':
        post = load_document(cls, data, required=('post_id', 'user_id', 'caption'))
        post.comments = [c if isinstance(c, Comment) else Comment(**c) for c in (post.comments or [])]
        post.likes = list(post.likes or [])
        return post
