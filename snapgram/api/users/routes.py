# snapgram/api/users/routes.py
import logging
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity
from marshmallow import ValidationError

from snapgram.api.posts.schemas import PostResponseSchema
from snapgram.api.users.schemas import ProfileCreateSchema, UserPublicResponseSchema, UserSummarySchema
from snapgram.core.errors import NotFoundError, SnapgramError, error_response

users_bp = Blueprint('users_bp', __name__)


@users_bp.route('/me/profile', methods=['POST'])
@jwt_required()
def create_my_profile():
    """현재 로그인된 uid로 프로필(사용자명, 소개)을 생성합니다."""
    user_service = current_app.services['users']
    user_id = get_jwt_identity()
    try:
        data = ProfileCreateSchema().load(request.get_json(silent=True) or {})
        user = user_service.create_profile(user_id, data['username'], data['bio'])
        return jsonify(UserPublicResponseSchema().dump(user)), 201
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except SnapgramError as e:
        return error_response(e)
    except Exception as e:
        logging.error(f"프로필 생성 중 오류 발생 (user_id: {user_id}): {e}", exc_info=True)
        return jsonify({"error_code": "PROFILE_CREATION_FAILED", "message": "프로필 생성 중 오류가 발생했습니다."}), 500


@users_bp.route('/me', methods=['GET'])
@jwt_required()
def get_my_profile():
    user_service = current_app.services['users']
    user = user_service.get_profile(get_jwt_identity())
    if not user:
        return jsonify({"error_code": "PROFILE_NOT_FOUND", "message": "프로필이 아직 생성되지 않았습니다."}), 404
    return jsonify(UserPublicResponseSchema().dump(user)), 200


@users_bp.route('/search', methods=['GET'])
@jwt_required(optional=True)
def search_users():
    """사용자명 부분 문자열 검색 (공개 API). 로그인한 경우 본인은 결과에서 제외합니다."""
    user_service = current_app.services['users']
    query = request.args.get('q', '', type=str)
    try:
        users = user_service.search_users(
            query, limit=current_app.config['USER_SEARCH_LIMIT'], exclude_uid=get_jwt_identity()
        )
        return jsonify(UserSummarySchema(many=True).dump(users)), 200
    except Exception as e:
        logging.error(f"사용자 검색 중 오류 발생 (q: {query}): {e}", exc_info=True)
        return jsonify({"error_code": "SEARCH_FAILED", "message": "사용자 검색 중 오류가 발생했습니다."}), 500


@users_bp.route('/<string:username>', methods=['GET'])
@jwt_required(optional=True)
def get_user_profile(username: str):
    """특정 사용자의 공개 프로필과 게시물 목록을 조회합니다."""
    user_service = current_app.services['users']
    post_service = current_app.services['posts']
    try:
        user = user_service.get_profile_by_username(username)
        if not user:
            return jsonify({"error_code": "USER_NOT_FOUND", "message": "사용자를 찾을 수 없습니다."}), 404
        posts = post_service.get_posts_by_user(user['uid'], get_jwt_identity())
        return jsonify({
            "user": UserPublicResponseSchema().dump(user),
            "posts": PostResponseSchema(many=True).dump(posts),
        }), 200
    except Exception as e:
        logging.error(f"사용자 프로필 조회 중 오류 발생 (username: {username}): {e}", exc_info=True)
        return jsonify({"error_code": "PROFILE_FETCH_FAILED", "message": "프로필 조회 중 오류가 발생했습니다."}), 500


@users_bp.route('/<string:username>/follow', methods=['POST'])
@jwt_required()
def toggle_follow(username: str):
    """대상 사용자를 팔로우하거나 언팔로우합니다."""
    user_service = current_app.services['users']
    user_id = get_jwt_identity()
    try:
        target = user_service.get_profile_by_username(username)
        if not target:
            raise NotFoundError("사용자를 찾을 수 없습니다.")
        result = user_service.toggle_follow(user_id, target['uid'])
        if result is None:
            return jsonify({"error_code": "FOLLOW_TOGGLE_FAILED", "message": "팔로우 처리 중 오류가 발생했습니다."}), 500
        following, followers_count = result
        return jsonify({"following": following, "followers_count": followers_count}), 200
    except SnapgramError as e:
        return error_response(e)


@users_bp.route('/<string:username>/followers', methods=['GET'])
def get_followers(username: str):
    user_service = current_app.services['users']
    try:
        return jsonify(UserSummarySchema(many=True).dump(user_service.list_followers(username))), 200
    except SnapgramError as e:
        return error_response(e)


@users_bp.route('/<string:username>/following', methods=['GET'])
def get_following(username: str):
    user_service = current_app.services['users']
    try:
        return jsonify(UserSummarySchema(many=True).dump(user_service.list_following(username))), 200
    except SnapgramError as e:
        return error_response(e)
