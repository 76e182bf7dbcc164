# snapgram/api/users/schemas.py
from marshmallow import Schema, fields, validate


class ProfileCreateSchema(Schema):
    """
    POST /api/users/me/profile
    사용자명 규칙(길이, 중복)은 서비스 계층에서 검증합니다.
    """
    username = fields.Str(required=True, error_messages={"required": "username은 필수 항목입니다."})
    bio = fields.Str(load_default='', validate=validate.Length(max=150))


class UserPublicResponseSchema(Schema):
    """
    다른 사용자에게 공개되는 프로필 응답 스키마.
    로그인 정보(email, password_hash)는 accounts 컬렉션에 있으므로 여기에 포함되지 않습니다.
    """
    uid = fields.Str(required=True)
    username = fields.Str(required=True)
    bio = fields.Str()
    following = fields.List(fields.Str())
    followed_by = fields.List(fields.Str())
    followers_count = fields.Function(lambda user: len(user.get('followed_by') or []))
    following_count = fields.Function(lambda user: len(user.get('following') or []))
    created_at = fields.DateTime(allow_none=True)


class UserSummarySchema(Schema):
    """검색 결과와 팔로워/팔로잉 목록에 쓰는 요약 스키마."""
    uid = fields.Str(required=True)
    username = fields.Str(required=True)
    bio = fields.Str()
    followers_count = fields.Function(lambda user: len(user.get('followed_by') or []))
