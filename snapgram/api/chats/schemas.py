# snapgram/api/chats/schemas.py
from marshmallow import Schema, fields, validate


class MessageCreateSchema(Schema):
    """POST /api/chats/with/{peer_id}/messages 요청 본문. 공백만 있는 메시지는 서비스에서 거절합니다."""
    text = fields.Str(required=True, validate=validate.Length(min=1, max=2000))


class MessageResponseSchema(Schema):
    message_id = fields.Str(required=True)
    sender_id = fields.Str(required=True)
    sender_username = fields.Str(required=True)
    text = fields.Str(required=True)
    timestamp = fields.DateTime(allow_none=True)


class ChatResponseSchema(Schema):
    """받은편지함 항목. peer_* 필드는 요청한 사용자 기준으로 라우트에서 채웁니다."""
    chat_id = fields.Str(required=True)
    participants = fields.List(fields.Str())
    last_message = fields.Str()
    last_sender_id = fields.Str(allow_none=True)
    last_sent = fields.DateTime(allow_none=True)
    participant_usernames = fields.Dict(keys=fields.Str(), values=fields.Str())
    peer_id = fields.Str(dump_only=True)
    peer_username = fields.Str(dump_only=True, allow_none=True)
