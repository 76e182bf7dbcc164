# snapgram/api/auth/schemas.py
from marshmallow import Schema, fields, validate

class SignupSchema(Schema):
    """회원가입 요청의 유효성을 검사하는 스키마"""
    username = fields.Str(required=True)
    email = fields.Email(required=True)
    password = fields.Str(required=True, load_only=True, validate=validate.Length(min=6, max=128))

class LoginSchema(Schema):
    """로그인 요청의 유효성을 검사하는 스키마"""
    email = fields.Email(required=True)
    password = fields.Str(required=True, load_only=True)

class FirebaseLoginSchema(Schema):
    """Firebase ID 토큰 교환 요청 스키마 (익명 로그인 포함)"""
    id_token = fields.Str(required=True, metadata={"description": "Firebase Auth ID 토큰"})
