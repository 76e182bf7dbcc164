# snapgram/api/posts/routes.py
import logging
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity
from marshmallow import ValidationError

from snapgram.api.posts.schemas import (
    PostCreateSchema, PostResponseSchema, CommentCreateSchema, CommentSchema,
)
from snapgram.core.errors import SnapgramError, error_response

posts_bp = Blueprint('posts_bp', __name__)


@posts_bp.route('', methods=['POST'])
@jwt_required()
def create_post():
    """
    새 게시물을 작성합니다.
    - multipart/form-data: image 파일 + caption
    - application/json: caption + image_url(선택)
    """
    post_service = current_app.services['posts']
    user_id = get_jwt_identity()
    try:
        if request.files or request.form:
            data = PostCreateSchema().load({"caption": request.form.get('caption', '')})
            image = request.files.get('image')
            if image is None:
                return jsonify({"error_code": "VALIDATION_ERROR", "details": {"image": ["이미지 파일이 필요합니다."]}}), 400
            # 업로드 전에 캡션과 프로필을 먼저 검증
            post_service.validate_new_post(user_id, data['caption'])
            storage_service = current_app.services['storage']
            data['image_url'] = storage_service.upload_post_image(user_id, image)
        else:
            data = PostCreateSchema().load(request.get_json(silent=True) or {})

        new_post = post_service.create_post(user_id, data['caption'], data.get('image_url'))
        return jsonify(PostResponseSchema().dump(new_post)), 201
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except SnapgramError as e:
        return error_response(e)
    except Exception as e:
        logging.error(f"게시물 생성 중 오류 발생 (user_id: {user_id}): {e}", exc_info=True)
        return jsonify({"error_code": "POST_CREATION_FAILED", "message": "게시물 생성 중 오류가 발생했습니다."}), 500


@posts_bp.route('', methods=['GET'])
@jwt_required()
def get_posts():
    """
    피드를 최신순으로 조회합니다.
    - scope=all(기본): 전체 게시물
    - scope=following: 팔로우 중인 사용자의 게시물
    """
    post_service = current_app.services['posts']
    user_id = get_jwt_identity()
    limit = request.args.get('limit', current_app.config['FEED_PAGE_SIZE'], type=int)
    cursor = request.args.get('cursor', None, type=str)
    scope = request.args.get('scope', 'all', type=str)

    if limit is None or limit <= 0 or limit > current_app.config['FEED_PAGE_SIZE_MAX']:
        return jsonify({
            "error_code": "INVALID_PARAMETER",
            "message": f"limit은 1 이상 {current_app.config['FEED_PAGE_SIZE_MAX']} 이하여야 합니다."
        }), 400
    if scope not in ('all', 'following'):
        return jsonify({"error_code": "INVALID_PARAMETER", "message": "scope는 all 또는 following 이어야 합니다."}), 400

    try:
        if scope == 'following':
            posts, next_cursor = post_service.get_following_feed(user_id, limit, cursor)
        else:
            posts, next_cursor = post_service.get_feed(user_id, limit, cursor)
        return jsonify({
            "posts": PostResponseSchema(many=True).dump(posts),
            "next_cursor": next_cursor
        }), 200
    except Exception as e:
        logging.error(f"게시물 목록 조회 중 오류 발생: {e}", exc_info=True)
        return jsonify({"error_code": "INTERNAL_SERVER_ERROR", "message": "게시물 목록 조회 중 오류가 발생했습니다."}), 500


@posts_bp.route('/<string:post_id>', methods=['GET'])
@jwt_required()
def get_post(post_id: str):
    post_service = current_app.services['posts']
    post = post_service.get_post(post_id, get_jwt_identity())
    if not post:
        return jsonify({"error_code": "POST_NOT_FOUND", "message": "게시물을 찾을 수 없습니다."}), 404
    return jsonify(PostResponseSchema().dump(post)), 200


@posts_bp.route('/<string:post_id>/like', methods=['POST'])
@jwt_required()
def toggle_post_like(post_id: str):
    """게시글 좋아요를 누르거나 취소합니다."""
    post_service = current_app.services['posts']
    user_id = get_jwt_identity()
    try:
        result = post_service.toggle_post_like(post_id, user_id)
        if result is None:
            return jsonify({"error_code": "LIKE_TOGGLE_FAILED", "message": "좋아요 처리 중 오류가 발생했습니다."}), 500
        liked, likes_count = result
        return jsonify({"liked": liked, "likes_count": likes_count}), 200
    except SnapgramError as e:
        return error_response(e)


@posts_bp.route('/<string:post_id>/comments', methods=['POST'])
@jwt_required()
def create_comment(post_id: str):
    """특정 게시글에 새로운 댓글을 작성합니다."""
    post_service = current_app.services['posts']
    user_id = get_jwt_identity()
    try:
        data = CommentCreateSchema().load(request.get_json(silent=True) or {})
        new_comment = post_service.add_comment(post_id, user_id, data['text'])
        return jsonify(CommentSchema().dump(new_comment)), 201
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except SnapgramError as e:
        return error_response(e)
    except Exception as e:
        logging.error(f"댓글 생성 중 오류 발생 (post_id: {post_id}): {e}", exc_info=True)
        return jsonify({"error_code": "COMMENT_CREATION_FAILED", "message": "댓글 생성 중 오류가 발생했습니다."}), 500


@posts_bp.route('/<string:post_id>/comments/<string:comment_id>', methods=['DELETE'])
@jwt_required()
def delete_comment(post_id: str, comment_id: str):
    """댓글을 삭제합니다. (댓글 작성자 또는 게시물 작성자만 가능)"""
    post_service = current_app.services['posts']
    user_id = get_jwt_identity()
    try:
        post_service.delete_comment(post_id, comment_id, user_id)
        return jsonify({"message": "댓글이 삭제되었습니다."}), 200
    except SnapgramError as e:
        return error_response(e)
