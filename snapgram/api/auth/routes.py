# snapgram/api/auth/routes.py

import logging
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import create_access_token
from marshmallow import ValidationError

from snapgram.api.auth.schemas import SignupSchema, LoginSchema, FirebaseLoginSchema
from snapgram.api.users.schemas import UserPublicResponseSchema
from snapgram.core.errors import SnapgramError, error_response

auth_bp = Blueprint('auth_bp', __name__)


@auth_bp.route('/signup', methods=['POST'])
def signup():
    """이메일/비밀번호 회원가입. 가입 즉시 로그인된 상태가 되도록 토큰을 함께 반환합니다."""
    auth_service = current_app.services['auth']
    try:
        data = SignupSchema().load(request.get_json(silent=True) or {})
        user = auth_service.signup(data['username'], data['email'], data['password'])
        token = create_access_token(identity=user['uid'])
        return jsonify({"token": token, "user": UserPublicResponseSchema().dump(user)}), 201
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except SnapgramError as e:
        return error_response(e)
    except Exception as e:
        logging.error(f"회원가입 중 예외 발생: {e}", exc_info=True)
        return jsonify({"error_code": "SIGNUP_FAILED", "message": "회원가입 처리 중 오류가 발생했습니다."}), 500


@auth_bp.route('/login', methods=['POST'])
def login():
    """이메일/비밀번호 로그인. 유효 기간 1일의 Access 토큰을 발급합니다."""
    auth_service = current_app.services['auth']
    try:
        data = LoginSchema().load(request.get_json(silent=True) or {})
        user = auth_service.login(data['email'], data['password'])
        token = create_access_token(identity=user['uid'])
        return jsonify({"token": token, "user": UserPublicResponseSchema().dump(user)}), 200
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except SnapgramError as e:
        return error_response(e)
    except Exception as e:
        logging.error(f"로그인 중 예외 발생: {e}", exc_info=True)
        return jsonify({"error_code": "LOGIN_FAILED", "message": "로그인 처리 중 오류가 발생했습니다."}), 500


@auth_bp.route('/firebase', methods=['POST'])
def firebase_login():
    """
    Firebase Auth ID 토큰(익명 로그인 포함)을 API 토큰으로 교환합니다.
    프로필이 아직 없으면 has_profile=False 로 응답하며, 클라이언트는
    POST /api/users/me/profile 로 프로필을 만들어야 합니다.
    """
    auth_service = current_app.services['auth']
    user_service = current_app.services['users']
    try:
        data = FirebaseLoginSchema().load(request.get_json(silent=True) or {})
        uid = auth_service.exchange_firebase_token(data['id_token'])
        user = user_service.get_profile(uid)
        token = create_access_token(identity=uid)
        return jsonify({
            "token": token,
            "uid": uid,
            "has_profile": user is not None,
            "user": UserPublicResponseSchema().dump(user) if user else None,
        }), 200
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except SnapgramError as e:
        return error_response(e)
    except Exception as e:
        logging.error(f"Firebase 토큰 교환 중 예외 발생: {e}", exc_info=True)
        return jsonify({"error_code": "INTERNAL_SERVER_ERROR", "message": "서버 내부 오류가 발생했습니다."}), 500
