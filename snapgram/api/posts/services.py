# snapgram/api/posts/services.py
import logging
import uuid
from dataclasses import asdict
from typing import Optional, Dict, Any, Tuple, List

from firebase_admin import firestore
from google.api_core import exceptions as gcp_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from snapgram.core.errors import (
    ForbiddenError, InvalidInputError, NotFoundError, StoreError, UnauthenticatedError,
)
from snapgram.models.post import Comment, Post
from snapgram.utils.datetime_utils import DateTimeUtils

# Firestore 'in' 쿼리가 허용하는 최대 값 개수
IN_QUERY_CHUNK = 30


class PostService:
    """
    게시물, 피드, 좋아요, 댓글 관련 비즈니스 로직을 담당하는 서비스 클래스.
    좋아요와 댓글은 게시물 문서 안의 배열로 관리합니다.
    """
    def __init__(self, db=None, caption_min_length: int = 5):
        self.db = db if db is not None else firestore.client()
        self.posts_ref = self.db.collection('posts')
        self.users_ref = self.db.collection('users')
        self.caption_min_length = caption_min_length

    def validate_new_post(self, user_id: str, caption: str) -> Tuple[str, str]:
        """
        게시물 작성 전 검증. 이미지 업로드 등 어떤 쓰기보다 먼저 호출합니다.

        :return: (작성자 사용자명, 공백을 제거한 캡션)
        """
        if not user_id:
            raise UnauthenticatedError()
        caption = (caption or '').strip()
        if len(caption) < self.caption_min_length:
            raise InvalidInputError(f"캡션은 최소 {self.caption_min_length}자 이상이어야 합니다.")

        user_doc = self.users_ref.document(user_id).get()
        username = (user_doc.to_dict() or {}).get('username') if user_doc.exists else None
        if not username:
            raise UnauthenticatedError("프로필을 먼저 생성해야 게시물을 작성할 수 있습니다.")
        return username, caption

    def create_post(self, user_id: str, caption: str, image_url: Optional[str] = None) -> Dict[str, Any]:
        """새로운 게시글을 생성합니다. 작성 시점의 사용자명을 함께 저장합니다."""
        username, caption = self.validate_new_post(user_id, caption)

        try:
            post_ref = self.posts_ref.document()
            new_post = Post(
                post_id=post_ref.id,
                user_id=user_id,
                username=username,
                caption=caption,
                image_url=image_url or None,
            )
            post_data = asdict(new_post)
            post_data['timestamp'] = firestore.SERVER_TIMESTAMP
            post_ref.set(post_data)
            return self._to_dict(post_ref.get().to_dict())
        except gcp_exceptions.GoogleAPICallError as e:
            logging.error(f"게시글 생성 실패 (user_id: {user_id}): {e}", exc_info=True)
            raise StoreError()

    def get_post(self, post_id: str, current_user_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        doc = self.posts_ref.document(post_id).get()
        if not doc.exists:
            return None
        return self._to_dict(doc.to_dict(), current_user_id)

    def get_feed(self, current_user_id: Optional[str], limit: int, cursor: Optional[str]) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """전체 게시물을 최신순으로 페이지 단위 조회합니다. cursor는 이전 페이지 마지막 post_id입니다."""
        query = self.posts_ref.order_by("timestamp", direction=firestore.Query.DESCENDING)
        if cursor:
            cursor_doc = self.posts_ref.document(cursor).get()
            if cursor_doc.exists:
                query = query.start_after(cursor_doc)

        posts = [self._to_dict(doc.to_dict(), current_user_id) for doc in query.limit(limit).stream()]
        next_cursor = posts[-1]['post_id'] if len(posts) == limit else None
        return posts, next_cursor

    def get_following_feed(self, current_user_id: str, limit: int, cursor: Optional[str]) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """
        팔로우 중인 사용자의 게시물만 최신순으로 조회합니다.
        'in' 쿼리 제한 때문에 30명 단위로 나누어 조회한 뒤 합쳐서 정렬합니다.
        """
        user_doc = self.users_ref.document(current_user_id).get()
        following = (user_doc.to_dict() or {}).get('following', []) if user_doc.exists else []
        if not following:
            return [], None

        cursor_doc = None
        if cursor:
            cursor_doc = self.posts_ref.document(cursor).get()
            if not cursor_doc.exists:
                cursor_doc = None

        posts = []
        for i in range(0, len(following), IN_QUERY_CHUNK):
            chunk = following[i:i + IN_QUERY_CHUNK]
            query = (
                self.posts_ref
                .where(filter=FieldFilter('user_id', 'in', chunk))
                .order_by("timestamp", direction=firestore.Query.DESCENDING)
            )
            if cursor_doc is not None:
                query = query.start_after(cursor_doc)
            posts.extend(self._to_dict(doc.to_dict(), current_user_id) for doc in query.limit(limit).stream())

        # start_after 커서와 같은 순서(timestamp, 문서 ID 내림차순)로 병합
        posts.sort(key=lambda p: (p['timestamp'], p['post_id']), reverse=True)
        posts = posts[:limit]
        next_cursor = posts[-1]['post_id'] if len(posts) == limit else None
        return posts, next_cursor

    def get_posts_by_user(self, author_id: str, current_user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """특정 사용자가 작성한 게시물 목록을 최신순으로 조회합니다."""
        query = (
            self.posts_ref
            .where(filter=FieldFilter('user_id', '==', author_id))
            .order_by("timestamp", direction=firestore.Query.DESCENDING)
        )
        return [self._to_dict(doc.to_dict(), current_user_id) for doc in query.stream()]

    # --- 좋아요 ---
    def toggle_like(self, post_id: str, user_id: str, currently_liked: bool) -> bool:
        """
        호출자가 본 상태(currently_liked)를 기준으로 좋아요를 추가하거나 취소합니다.
        오래된 상태로 빠르게 두 번 호출하면 두 번 토글될 수 있습니다.
        저장 실패는 로그만 남기고 False를 반환합니다.
        """
        if not user_id:
            raise UnauthenticatedError()
        update = firestore.ArrayRemove([user_id]) if currently_liked else firestore.ArrayUnion([user_id])
        try:
            self.posts_ref.document(post_id).update({'likes': update})
            return True
        except gcp_exceptions.NotFound:
            raise NotFoundError("게시글을 찾을 수 없습니다.")
        except Exception as e:
            logging.error(f"게시글 좋아요 토글 실패 (user_id: {user_id}, post_id: {post_id}): {e}", exc_info=True)
            return False

    def toggle_post_like(self, post_id: str, user_id: str) -> Optional[Tuple[bool, int]]:
        """저장된 상태를 읽어 좋아요를 토글합니다. 반환값은 (좋아요 여부, 좋아요 수)."""
        doc = self.posts_ref.document(post_id).get()
        if not doc.exists:
            raise NotFoundError("게시글을 찾을 수 없습니다.")

        likes = set(doc.to_dict().get('likes') or [])
        currently_liked = user_id in likes
        if not self.toggle_like(post_id, user_id, currently_liked):
            return None

        if currently_liked:
            likes.discard(user_id)
        else:
            likes.add(user_id)
        return not currently_liked, len(likes)

    # --- 댓글 ---
    def add_comment(self, post_id: str, user_id: str, text: str) -> Dict[str, Any]:
        """게시물에 댓글을 추가합니다. 작성 시점의 사용자명과 클라이언트 시각을 함께 저장합니다."""
        if not user_id:
            raise UnauthenticatedError()
        if not (text or '').strip():
            raise InvalidInputError("댓글 내용을 입력해주세요.")

        user_doc = self.users_ref.document(user_id).get()
        username = (user_doc.to_dict() or {}).get('username') if user_doc.exists else None
        if not username:
            raise UnauthenticatedError("프로필을 먼저 생성해야 댓글을 작성할 수 있습니다.")

        new_comment = Comment(
            comment_id=str(uuid.uuid4()),
            user_id=user_id,
            username=username,
            text=text,
            timestamp=DateTimeUtils.now_iso(),
        )
        try:
            self.posts_ref.document(post_id).update({'comments': firestore.ArrayUnion([asdict(new_comment)])})
        except gcp_exceptions.NotFound:
            raise NotFoundError("댓글을 작성할 게시물이 존재하지 않습니다.")
        except gcp_exceptions.GoogleAPICallError as e:
            logging.error(f"댓글 생성 실패 (post_id: {post_id}): {e}", exc_info=True)
            raise StoreError()
        return asdict(new_comment)

    def delete_comment(self, post_id: str, comment_id: str, user_id: str) -> None:
        """댓글을 삭제합니다. 댓글 작성자 또는 게시물 작성자만 가능합니다."""
        post_ref = self.posts_ref.document(post_id)
        doc = post_ref.get()
        if not doc.exists:
            raise NotFoundError("게시글을 찾을 수 없습니다.")

        post_data = doc.to_dict()
        stored = next((c for c in post_data.get('comments') or [] if c.get('comment_id') == comment_id), None)
        if stored is None:
            raise NotFoundError("댓글을 찾을 수 없습니다.")
        if user_id not in (stored.get('user_id'), post_data.get('user_id')):
            raise ForbiddenError("댓글을 삭제할 권한이 없습니다.")

        try:
            # 저장된 원소와 정확히 같은 값을 넘겨야 ArrayRemove가 동작합니다.
            post_ref.update({'comments': firestore.ArrayRemove([stored])})
        except gcp_exceptions.GoogleAPICallError as e:
            logging.error(f"댓글 삭제 실패 (comment_id: {comment_id}): {e}", exc_info=True)
            raise StoreError()

    def _to_dict(self, data: Dict[str, Any], current_user_id: Optional[str] = None) -> Dict[str, Any]:
        post = Post.from_firestore(data)
        post.comments.sort(key=lambda c: DateTimeUtils.parse_iso_datetime(c.timestamp))
        post_dict = asdict(post)
        post_dict['is_liked'] = bool(current_user_id) and current_user_id in post.likes
        return post_dict
