# snapgram/api/chats/routes.py
import json
import logging
import queue
from typing import Any, Dict

from flask import Blueprint, Response, request, jsonify, current_app, stream_with_context
from flask_jwt_extended import jwt_required, get_jwt_identity
from marshmallow import ValidationError

from snapgram.api.chats.schemas import ChatResponseSchema, MessageCreateSchema, MessageResponseSchema
from snapgram.core.errors import SnapgramError, error_response

chats_bp = Blueprint('chats_bp', __name__)


def sse_format(event: Dict[str, Any]) -> str:
    data = json.dumps(event, ensure_ascii=False, separators=(",", ":"))
    return f"data: {data}\n\n"


def _with_peer(chat: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    peer_id = next((uid for uid in chat['participants'] if uid != user_id), user_id)
    chat['peer_id'] = peer_id
    chat['peer_username'] = chat.get('participant_usernames', {}).get(peer_id)
    return chat


@chats_bp.route('', methods=['GET'])
@jwt_required()
def list_chats():
    """받은편지함: 참여 중인 채팅을 최근 활동순으로 최대 CHAT_LIST_LIMIT개 반환합니다."""
    messaging_service = current_app.services['messaging']
    user_id = get_jwt_identity()
    try:
        chats = messaging_service.list_chats(user_id, limit=current_app.config['CHAT_LIST_LIMIT'])
        return jsonify(ChatResponseSchema(many=True).dump([_with_peer(c, user_id) for c in chats])), 200
    except Exception as e:
        logging.error(f"채팅 목록 조회 중 오류 발생 (user_id: {user_id}): {e}", exc_info=True)
        return jsonify({"error_code": "INTERNAL_SERVER_ERROR", "message": "채팅 목록 조회 중 오류가 발생했습니다."}), 500


@chats_bp.route('/with/<string:peer_id>', methods=['GET'])
@jwt_required()
def open_chat(peer_id: str):
    """상대방과의 채팅 ID와 요약 정보를 반환합니다. 아직 메시지가 없으면 chat은 null입니다."""
    messaging_service = current_app.services['messaging']
    user_id = get_jwt_identity()
    try:
        chat_id = messaging_service.open_chat(user_id, peer_id)
        chat = messaging_service.get_chat(chat_id)
        return jsonify({
            "chat_id": chat_id,
            "chat": ChatResponseSchema().dump(_with_peer(chat, user_id)) if chat else None,
        }), 200
    except SnapgramError as e:
        return error_response(e)


@chats_bp.route('/with/<string:peer_id>/messages', methods=['GET'])
@jwt_required()
def get_messages(peer_id: str):
    """상대방과의 전체 메시지를 시간 오름차순으로 반환합니다."""
    messaging_service = current_app.services['messaging']
    user_id = get_jwt_identity()
    try:
        chat_id = messaging_service.open_chat(user_id, peer_id)
        messages = messaging_service.stream_messages(chat_id)
        return jsonify({"chat_id": chat_id, "messages": MessageResponseSchema(many=True).dump(messages)}), 200
    except SnapgramError as e:
        return error_response(e)
    except Exception as e:
        logging.error(f"메시지 조회 중 오류 발생 ({user_id} <-> {peer_id}): {e}", exc_info=True)
        return jsonify({"error_code": "INTERNAL_SERVER_ERROR", "message": "메시지 조회 중 오류가 발생했습니다."}), 500


@chats_bp.route('/with/<string:peer_id>/messages', methods=['POST'])
@jwt_required()
def send_message(peer_id: str):
    messaging_service = current_app.services['messaging']
    user_id = get_jwt_identity()
    try:
        data = MessageCreateSchema().load(request.get_json(silent=True) or {})
        message = messaging_service.send_message(user_id, peer_id, data['text'])
        response = MessageResponseSchema().dump(message)
        response['chat_id'] = message['chat_id']
        return jsonify(response), 201
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except SnapgramError as e:
        return error_response(e)
    except Exception as e:
        logging.error(f"메시지 전송 중 오류 발생 ({user_id} -> {peer_id}): {e}", exc_info=True)
        return jsonify({"error_code": "MESSAGE_SEND_FAILED", "message": "메시지 전송 중 오류가 발생했습니다."}), 500


@chats_bp.route('/with/<string:peer_id>/messages/stream', methods=['GET'])
@jwt_required()
def stream_messages(peer_id: str):
    """
    Server-Sent Events로 메시지를 실시간 전달합니다.
    연결 직후 기존 메시지를 모두 보내고, 이후에는 새 메시지만 보냅니다.
    구독은 첫 청크 전송 시 시작되며, 연결이 끊기면 해제합니다.
    """
    messaging_service = current_app.services['messaging']
    user_id = get_jwt_identity()
    try:
        chat_id = messaging_service.open_chat(user_id, peer_id)
    except SnapgramError as e:
        return error_response(e)

    keepalive_seconds = current_app.config.get('SSE_KEEPALIVE_SECONDS', 15)

    def generate():
        # 본문을 읽지 않고 닫힌 응답(HEAD 포함)에는 구독이 생기지 않음
        updates: queue.Queue = queue.Queue()
        watch = messaging_service.watch_messages(chat_id, updates.put)
        sent_ids = set()
        try:
            yield sse_format({"type": "hello", "chat_id": chat_id})
            while True:
                try:
                    messages = updates.get(timeout=keepalive_seconds)
                except queue.Empty:
                    yield ":\n\n"
                    continue
                for message in messages:
                    if message['message_id'] in sent_ids:
                        continue
                    sent_ids.add(message['message_id'])
                    yield sse_format({"type": "message", "message": MessageResponseSchema().dump(message)})
        finally:
            watch.unsubscribe()

    return Response(
        stream_with_context(generate()),
        mimetype='text/event-stream',
        headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'},
    )
