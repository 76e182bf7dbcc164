# snapgram/api/users/services.py
import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional, Tuple

from firebase_admin import firestore
from google.api_core import exceptions as gcp_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from snapgram.core.errors import (
    DuplicateUsernameError, InvalidInputError, NotFoundError,
    ProfileExistsError, StoreError, UnauthenticatedError,
)
from snapgram.models.user import User
from snapgram.utils.datetime_utils import DateTimeUtils

logger = logging.getLogger(__name__)

# /api/users/ 하위 고정 경로와 겹치는 이름
RESERVED_USERNAMES = {'me', 'search'}
# Firestore 'in' 쿼리가 허용하는 최대 값 개수
IN_QUERY_CHUNK = 30
# WriteBatch 한 번에 담을 수 있는 쓰기 수(500) 이하로 유지
BATCH_LIMIT = 400


class UserService:
    """
    사용자 프로필과 팔로우 그래프를 담당하는 서비스 클래스.
    - following / followed_by 두 배열은 항상 하나의 WriteBatch로 함께 갱신합니다.
    """
    def __init__(self, db=None, username_min_length: int = 3):
        self.db = db if db is not None else firestore.client()
        self.users_ref = self.db.collection('users')
        self.username_min_length = username_min_length

    # --- 프로필 ---
    def validate_username(self, username: Optional[str]) -> str:
        """앞뒤 공백을 제거한 사용자명을 반환합니다. 형식이 틀리면 InvalidInputError."""
        username = (username or '').strip()
        if len(username) < self.username_min_length:
            raise InvalidInputError(f"사용자명은 최소 {self.username_min_length}자 이상이어야 합니다.")
        if username.lower() in RESERVED_USERNAMES:
            raise InvalidInputError(f"'{username}'은(는) 사용할 수 없는 사용자명입니다.")
        if '/' in username:
            # /api/users/<username> 경로로 조회할 수 없는 이름
            raise InvalidInputError("사용자명에는 '/'를 사용할 수 없습니다.")
        return username

    def create_profile(self, uid: str, username: str, bio: str = '', batch=None) -> Dict[str, Any]:
        """
        새 프로필을 생성합니다.

        사용자명 중복 검사는 username_lower 필드 조회로 대소문자를 구분하지 않습니다.
        예약 문서를 쓰지 않으므로 동시에 같은 이름으로 가입하면 둘 다 통과할 수 있습니다.

        :param batch: 주어지면 즉시 쓰지 않고 해당 WriteBatch에 set을 추가합니다.
        """
        if not uid:
            raise UnauthenticatedError()
        username = self.validate_username(username)

        try:
            user_ref = self.users_ref.document(uid)
            existing = user_ref.get()
            if existing.exists and (existing.to_dict() or {}).get('username'):
                raise ProfileExistsError()
            if self._find_doc_by_username(username) is not None:
                raise DuplicateUsernameError()

            new_user = User(
                uid=uid,
                username=username,
                username_lower=username.lower(),
                bio=(bio or '').strip(),
            )
            user_data = DateTimeUtils.for_firestore(asdict(new_user))
            if batch is not None:
                batch.set(user_ref, user_data)
            else:
                user_ref.set(user_data)
        except gcp_exceptions.GoogleAPICallError as e:
            logging.error(f"프로필 생성 실패 (uid: {uid}): {e}", exc_info=True)
            raise StoreError()

        logger.info(f"프로필 생성 완료: {uid} ({username})")
        return asdict(new_user)

    def get_profile(self, uid: str) -> Optional[Dict[str, Any]]:
        doc = self.users_ref.document(uid).get()
        if not doc.exists:
            return None
        return asdict(User.from_firestore(doc.to_dict()))

    def get_profile_by_username(self, username: str) -> Optional[Dict[str, Any]]:
        """대소문자 구분 없이 사용자명으로 프로필을 조회합니다."""
        doc = self._find_doc_by_username(username or '')
        if doc is None:
            return None
        return asdict(User.from_firestore(doc.to_dict()))

    def search_users(self, query: str, limit: int = 20, exclude_uid: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        사용자명 부분 문자열 검색 (대소문자 무시). 결과는 사용자명 알파벳 순입니다.

        Firestore는 부분 문자열 쿼리를 지원하지 않으므로 username_lower 순으로
        프로필을 읽으며 일치하는 항목을 limit개까지 모읍니다.

        :param exclude_uid: 결과에서 제외할 uid (검색하는 본인)
        """
        needle = (query or '').strip().lower()
        if not needle:
            return []

        results = []
        for doc in self.users_ref.order_by('username_lower').stream():
            data = doc.to_dict() or {}
            if needle not in (data.get('username_lower') or '') or doc.id == exclude_uid:
                continue
            results.append(asdict(User.from_firestore(data)))
            if len(results) >= limit:
                break
        return results

    def _find_doc_by_username(self, username: str):
        query = self.users_ref.where(filter=FieldFilter('username_lower', '==', username.lower())).limit(1).stream()
        return next(iter(query), None)

    def get_profiles(self, uids: List[str]) -> List[Dict[str, Any]]:
        """uid 목록에 해당하는 프로필을 사용자명 순으로 반환합니다. 없는 uid는 건너뜁니다."""
        profiles = []
        for i in range(0, len(uids), IN_QUERY_CHUNK):
            chunk = uids[i:i + IN_QUERY_CHUNK]
            docs = self.users_ref.where(filter=FieldFilter('uid', 'in', chunk)).stream()
            profiles.extend(asdict(User.from_firestore(doc.to_dict())) for doc in docs)
        return sorted(profiles, key=lambda p: p['username_lower'])

    # --- 팔로우 그래프 ---
    def toggle_follow(self, caller_uid: str, target_uid: str) -> Optional[Tuple[bool, int]]:
        """
        팔로우/언팔로우를 토글합니다.

        호출자의 following 과 대상의 followed_by 를 하나의 WriteBatch로 커밋하므로
        둘 중 하나만 반영되는 일은 없습니다. 배열 변경은 ArrayUnion/ArrayRemove라
        다른 사용자의 동시 팔로우와 충돌하지 않습니다.

        :return: (현재 팔로우 중인지, 대상의 팔로워 수). 저장 실패 시 None.
        """
        if not caller_uid:
            raise UnauthenticatedError()
        if caller_uid == target_uid:
            raise InvalidInputError("자기 자신은 팔로우할 수 없습니다.")

        caller_ref = self.users_ref.document(caller_uid)
        target_ref = self.users_ref.document(target_uid)
        target_doc = target_ref.get()
        if not target_doc.exists:
            raise NotFoundError("사용자를 찾을 수 없습니다.")
        caller_doc = caller_ref.get()
        if not caller_doc.exists:
            raise NotFoundError("현재 사용자의 프로필을 찾을 수 없습니다.")

        is_following = target_uid in (caller_doc.to_dict().get('following') or [])
        try:
            batch = self.db.batch()
            if is_following:
                batch.update(caller_ref, {'following': firestore.ArrayRemove([target_uid])})
                batch.update(target_ref, {'followed_by': firestore.ArrayRemove([caller_uid])})
            else:
                batch.update(caller_ref, {'following': firestore.ArrayUnion([target_uid])})
                batch.update(target_ref, {'followed_by': firestore.ArrayUnion([caller_uid])})
            batch.commit()
        except Exception as e:
            logging.error(f"팔로우 토글 실패 ({caller_uid} -> {target_uid}): {e}", exc_info=True)
            return None

        followers = set(target_doc.to_dict().get('followed_by') or [])
        if is_following:
            followers.discard(caller_uid)
        else:
            followers.add(caller_uid)
        return not is_following, len(followers)

    def list_followers(self, username: str) -> List[Dict[str, Any]]:
        user = self.get_profile_by_username(username)
        if not user:
            raise NotFoundError("사용자를 찾을 수 없습니다.")
        return self.get_profiles(user['followed_by'])

    def list_following(self, username: str) -> List[Dict[str, Any]]:
        user = self.get_profile_by_username(username)
        if not user:
            raise NotFoundError("사용자를 찾을 수 없습니다.")
        return self.get_profiles(user['following'])

    def reconcile_follow_graph(self) -> int:
        """
        팔로우 그래프의 비대칭을 복구합니다.

        following 배열을 기준으로 followed_by 를 맞춥니다. 과거 두 번의 개별 쓰기
        사이에서 실패한 팔로우는 완료되고, 실패한 언팔로우도 완료되는 방향입니다.
        삭제된 사용자를 가리키는 항목은 제거합니다.

        :return: 적용한 수정 개수
        """
        users = {doc.id: doc.to_dict() for doc in self.users_ref.stream()}
        fixes: List[Tuple[str, Dict[str, Any]]] = []

        for uid, data in users.items():
            for target in data.get('following') or []:
                if target not in users:
                    fixes.append((uid, {'following': firestore.ArrayRemove([target])}))
                elif uid not in (users[target].get('followed_by') or []):
                    fixes.append((target, {'followed_by': firestore.ArrayUnion([uid])}))
            for follower in data.get('followed_by') or []:
                if follower not in users or uid not in (users[follower].get('following') or []):
                    fixes.append((uid, {'followed_by': firestore.ArrayRemove([follower])}))

        for i in range(0, len(fixes), BATCH_LIMIT):
            batch = self.db.batch()
            for uid, update in fixes[i:i + BATCH_LIMIT]:
                batch.update(self.users_ref.document(uid), update)
            batch.commit()

        logger.info(f"팔로우 그래프 복구 완료: {len(fixes)}건 수정")
        return len(fixes)
