# snapgram/api/posts/schemas.py
from marshmallow import Schema, fields, validate

# --- 재사용을 위한 중첩 스키마 ---
class CommentSchema(Schema):
    """게시물 응답에 포함될 댓글 스키마."""
    comment_id = fields.Str(required=True)
    user_id = fields.Str(required=True)
    username = fields.Str(required=True)
    text = fields.Str(required=True)
    timestamp = fields.Str(required=True)

# --- API 요청/응답 스키마 ---

class PostCreateSchema(Schema):
    """
    POST /api/posts 요청의 유효성을 검사합니다.
    multipart 요청이면 image 파일을, JSON 요청이면 image_url을 사용합니다.
    최소 길이는 공백 제거 후 서비스 계층에서 검사합니다.
    """
    caption = fields.Str(required=True, validate=validate.Length(max=2200))
    image_url = fields.URL(load_default=None, allow_none=True)

class CommentCreateSchema(Schema):
    """POST /api/posts/{post_id}/comments 요청 본문의 유효성을 검사합니다."""
    text = fields.Str(required=True, validate=validate.Length(min=1, max=1000, error="댓글은 1~1000자 사이여야 합니다."))

class PostResponseSchema(Schema):
    """게시글 정보 응답을 위한 최종 JSON 형식을 정의합니다."""
    post_id = fields.Str(dump_only=True)
    user_id = fields.Str(required=True)
    username = fields.Str(required=True)
    caption = fields.Str(required=True)
    image_url = fields.Str(allow_none=True)
    timestamp = fields.DateTime(allow_none=True)
    likes = fields.List(fields.Str())
    likes_count = fields.Function(lambda post: len(post.get('likes') or []))
    comments = fields.List(fields.Nested(CommentSchema))
    comments_count = fields.Function(lambda post: len(post.get('comments') or []))
    is_liked = fields.Bool(dump_only=True, dump_default=False)
