# snapgram/api/chats/services.py
import logging
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional

from firebase_admin import firestore
from google.api_core import exceptions as gcp_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from snapgram.core.errors import InvalidInputError, NotFoundError, StoreError, UnauthenticatedError
from snapgram.models.base import SCHEMA_VERSION
from snapgram.models.chat import Chat, Message

logger = logging.getLogger(__name__)


def get_chat_id(uid_a: str, uid_b: str) -> str:
    """두 uid를 정렬해 '_'로 이은 채팅 ID. 호출 순서와 관계없이 같은 값을 돌려줍니다."""
    return '_'.join(sorted([uid_a, uid_b]))


class MessagingService:
    """
    1:1 채팅을 담당하는 서비스 클래스.
    - chats/{chat_id}: 받은편지함 표시용 요약 문서
    - chats/{chat_id}/messages: 시간순으로 추가만 되는 메시지 로그
    """
    def __init__(self, db=None):
        self.db = db if db is not None else firestore.client()
        self.chats_ref = self.db.collection('chats')
        self.users_ref = self.db.collection('users')

    def _messages_ref(self, chat_id: str):
        return self.chats_ref.document(chat_id).collection('messages')

    def open_chat(self, uid_a: str, uid_b: str) -> str:
        """대화 상대를 검증하고 채팅 ID를 반환합니다. 문서는 첫 메시지 전송 시 생성됩니다."""
        if not uid_a:
            raise UnauthenticatedError()
        if uid_a == uid_b:
            raise InvalidInputError("자기 자신과는 대화할 수 없습니다.")
        if not self.users_ref.document(uid_b).get().exists:
            raise NotFoundError("대화 상대를 찾을 수 없습니다.")
        return get_chat_id(uid_a, uid_b)

    def get_chat(self, chat_id: str) -> Optional[Dict[str, Any]]:
        doc = self.chats_ref.document(chat_id).get()
        if not doc.exists:
            return None
        return asdict(Chat.from_firestore(doc.to_dict()))

    def send_message(self, sender_id: str, recipient_id: str, text: str) -> Dict[str, Any]:
        """
        메시지를 추가하고 채팅 요약 문서를 갱신합니다.

        메시지 추가와 요약 merge-upsert를 하나의 WriteBatch로 커밋하므로
        메시지는 저장됐는데 받은편지함 요약이 갱신되지 않는 상황은 생기지 않습니다.
        두 타임스탬프 모두 서버 시각입니다.
        """
        if not (text or '').strip():
            raise InvalidInputError("메시지 내용을 입력해주세요.")
        chat_id = self.open_chat(sender_id, recipient_id)

        sender_doc = self.users_ref.document(sender_id).get()
        sender_username = (sender_doc.to_dict() or {}).get('username') if sender_doc.exists else None
        if not sender_username:
            raise UnauthenticatedError("프로필을 먼저 생성해야 메시지를 보낼 수 있습니다.")
        recipient_username = (self.users_ref.document(recipient_id).get().to_dict() or {}).get('username') or 'User'

        chat_ref = self.chats_ref.document(chat_id)
        message_ref = self._messages_ref(chat_id).document()
        message = Message(
            message_id=message_ref.id,
            sender_id=sender_id,
            sender_username=sender_username,
            text=text,
        )
        message_data = asdict(message)
        message_data['timestamp'] = firestore.SERVER_TIMESTAMP

        summary = {
            'chat_id': chat_id,
            'participants': sorted([sender_id, recipient_id]),
            'last_message': text,
            'last_sender_id': sender_id,
            'last_sent': firestore.SERVER_TIMESTAMP,
            'participant_usernames': {
                sender_id: sender_username,
                recipient_id: recipient_username,
            },
            'schema_version': SCHEMA_VERSION,
        }

        try:
            batch = self.db.batch()
            batch.set(message_ref, message_data)
            batch.set(chat_ref, summary, merge=True)
            batch.commit()
            saved = message_ref.get().to_dict()
        except gcp_exceptions.GoogleAPICallError as e:
            logging.error(f"메시지 전송 실패 (chat_id: {chat_id}): {e}", exc_info=True)
            raise StoreError()

        result = asdict(Message.from_firestore(saved))
        result['chat_id'] = chat_id
        return result

    def list_chats(self, uid: str, limit: int = 50) -> List[Dict[str, Any]]:
        """
        사용자가 참여한 채팅을 최근 활동순으로 반환합니다.
        참여자 조건을 쿼리에 포함하므로 limit은 필터링 이후에 적용됩니다.
        """
        query = (
            self.chats_ref
            .where(filter=FieldFilter('participants', 'array_contains', uid))
            .order_by('last_sent', direction=firestore.Query.DESCENDING)
            .limit(limit)
        )
        return [asdict(Chat.from_firestore(doc.to_dict())) for doc in query.stream()]

    def stream_messages(self, chat_id: str) -> List[Dict[str, Any]]:
        """채팅의 전체 메시지를 서버 타임스탬프 오름차순으로 반환합니다."""
        query = self._messages_ref(chat_id).order_by('timestamp')
        return [asdict(Message.from_firestore(doc.to_dict())) for doc in query.stream()]

    def watch_messages(self, chat_id: str, callback: Callable[[List[Dict[str, Any]]], None]):
        """
        메시지 로그를 실시간 구독합니다. 변경이 있을 때마다 정렬된 전체 목록으로 callback을 호출합니다.

        :return: unsubscribe() 를 가진 Watch 객체
        """
        def _on_snapshot(docs, changes, read_time):
            try:
                callback([asdict(Message.from_firestore(doc.to_dict())) for doc in docs])
            except Exception as e:
                logging.error(f"메시지 구독 콜백 처리 실패 (chat_id: {chat_id}): {e}", exc_info=True)

        return self._messages_ref(chat_id).order_by('timestamp').on_snapshot(_on_snapshot)

    def repair_chat_summary(self, chat_id: str) -> bool:
        """
        가장 최근 메시지로 채팅 요약 문서를 다시 씁니다.
        요약이 이미 최신이면 아무것도 하지 않고 False를 반환합니다.
        """
        latest_docs = list(
            self._messages_ref(chat_id)
            .order_by('timestamp', direction=firestore.Query.DESCENDING)
            .limit(1)
            .stream()
        )
        if not latest_docs:
            return False
        latest = latest_docs[0].to_dict()

        chat_doc = self.chats_ref.document(chat_id).get()
        chat_data = chat_doc.to_dict() if chat_doc.exists else {}
        if (chat_data.get('last_sent') is not None
                and chat_data.get('last_sent') >= latest['timestamp']
                and chat_data.get('last_message') == latest['text']):
            return False

        participants = chat_data.get('participants') or chat_id.split('_')
        summary = {
            'chat_id': chat_id,
            'participants': sorted(participants),
            'last_message': latest['text'],
            'last_sender_id': latest['sender_id'],
            'last_sent': latest['timestamp'],
            'schema_version': SCHEMA_VERSION,
        }
        if not chat_data.get('participant_usernames'):
            summary['participant_usernames'] = {
                uid: (self.users_ref.document(uid).get().to_dict() or {}).get('username') or 'User'
                for uid in participants
            }
        self.chats_ref.document(chat_id).set(summary, merge=True)
        logger.info(f"채팅 요약 복구 완료: {chat_id}")
        return True

    def repair_all_chat_summaries(self) -> int:
        """
        메시지가 있는 모든 채팅의 요약 문서를 점검해 복구한 개수를 반환합니다.
        요약 문서가 아예 없는 채팅도 messages 컬렉션 그룹에서 찾아냅니다.
        """
        chat_ids = {
            doc.reference.parent.parent.id
            for doc in self.db.collection_group('messages').stream()
            if doc.reference.parent.parent is not None
        }
        return sum(1 for chat_id in sorted(chat_ids) if self.repair_chat_summary(chat_id))
