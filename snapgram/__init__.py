# snapgram/__init__.py

# =====================================================================================
# 1. 환경 변수 로드 (가장 먼저 실행)
# =====================================================================================
from dotenv import load_dotenv
load_dotenv()

# =====================================================================================
# 2. 모듈 임포트 (Module Imports)
# =====================================================================================
import os
import logging

import click
import firebase_admin
from firebase_admin import credentials, firestore
from flask import Flask, jsonify
from flask_jwt_extended import JWTManager
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

# - 설정 / 예외
from snapgram.core.config import config_by_name
from snapgram.core.errors import SnapgramError, error_response

# - API 블루프린트
from snapgram.api.auth.routes import auth_bp
from snapgram.api.users.routes import users_bp
from snapgram.api.posts.routes import posts_bp
from snapgram.api.chats.routes import chats_bp

# - 서비스
from snapgram.services.storage_service import StorageService
from snapgram.api.auth.services import AuthService
from snapgram.api.users.services import UserService
from snapgram.api.posts.services import PostService
from snapgram.api.chats.services import MessagingService


def create_app(config_name: str = None, db=None, bucket=None):
    """
    Flask 애플리케이션 팩토리 함수.

    :param config_name: development / testing / production. 없으면 FLASK_ENV를 따릅니다.
    :param db: Firestore 클라이언트. 주어지면 firebase_admin 초기화를 건너뜁니다.
    :param bucket: Storage 버킷 객체. 테스트에서 주입합니다.
    """
    # =====================================================================================
    # 3. Flask 앱 생성 및 기본 설정
    # =====================================================================================
    config_name = config_name or os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])
    app.json.ensure_ascii = False

    if not app.config.get('JWT_SECRET_KEY'):
        raise ValueError("필수 환경 변수가 설정되지 않았습니다: JWT_SECRET_KEY")

    # =====================================================================================
    # 4. 확장 기능 및 외부 서비스 초기화
    # =====================================================================================
    jwt = JWTManager(app)

    @jwt.unauthorized_loader
    def handle_missing_token(reason):
        return jsonify({"error_code": "UNAUTHENTICATED", "message": "로그인이 필요합니다."}), 401

    @jwt.expired_token_loader
    def handle_expired_token(jwt_header, jwt_payload):
        return jsonify({"error_code": "TOKEN_EXPIRED", "message": "토큰이 만료되었습니다. 다시 로그인해주세요."}), 401

    @jwt.invalid_token_loader
    def handle_invalid_token(reason):
        return jsonify({"error_code": "INVALID_TOKEN", "message": "유효하지 않은 토큰입니다."}), 401

    if db is None:
        if not firebase_admin._apps:
            cred_path = app.config['FIREBASE_CREDENTIALS_PATH']
            if not cred_path or not os.path.exists(cred_path):
                raise FileNotFoundError(f"Firebase 인증 파일을 찾을 수 없습니다: {cred_path}")
            cred = credentials.Certificate(cred_path)
            firebase_admin.initialize_app(cred, {
                'storageBucket': app.config['FIREBASE_STORAGE_BUCKET']
            })
        db = firestore.client()

    # =====================================================================================
    # 5. 서비스 인스턴스 생성 및 'app.services'에 저장 (의존성 주입)
    # =====================================================================================
    app.services = {}

    try:
        storage_instance = StorageService()
        storage_instance.init_app(app, bucket=bucket)
        app.services['storage'] = storage_instance
        logging.info("Storage service initialized successfully")
    except Exception as e:
        logging.error(f"Failed to initialize storage service: {e}")
        raise

    app.services['users'] = UserService(db=db, username_min_length=app.config['USERNAME_MIN_LENGTH'])
    app.services['posts'] = PostService(db=db, caption_min_length=app.config['CAPTION_MIN_LENGTH'])
    app.services['messaging'] = MessagingService(db=db)
    app.services['auth'] = AuthService(user_service=app.services['users'], db=db)

    # =====================================================================================
    # 6. 블루프린트 등록
    # =====================================================================================
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(users_bp, url_prefix='/api/users')
    app.register_blueprint(posts_bp, url_prefix='/api/posts')
    app.register_blueprint(chats_bp, url_prefix='/api/chats')

    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({"status": "ok"}), 200

    # =====================================================================================
    # 7. 전역 에러 핸들러 설정
    # =====================================================================================
    @app.errorhandler(ValidationError)
    def handle_marshmallow_validation(err):
        response = {"error_code": "VALIDATION_ERROR", "details": err.messages}
        return jsonify(response), 400

    @app.errorhandler(SnapgramError)
    def handle_domain_error(err):
        return error_response(err)

    @app.errorhandler(Exception)
    def handle_generic_exception(err):
        if isinstance(err, HTTPException):
            return err
        logging.error(f"An unhandled exception occurred: {err}", exc_info=True)
        response = {"error_code": "INTERNAL_SERVER_ERROR", "message": "서버 내부에서 예상치 못한 오류가 발생했습니다."}
        return jsonify(response), 500

    # =====================================================================================
    # 8. 관리 명령 (flask reconcile-follows / flask repair-chat-summaries)
    # =====================================================================================
    @app.cli.command('reconcile-follows')
    def reconcile_follows_command():
        """팔로우 그래프의 following / followed_by 비대칭을 복구합니다."""
        fixed = app.services['users'].reconcile_follow_graph()
        click.echo(f"팔로우 그래프 수정: {fixed}건")

    @app.cli.command('repair-chat-summaries')
    def repair_chat_summaries_command():
        """최근 메시지와 맞지 않는 채팅 요약 문서를 다시 씁니다."""
        repaired = app.services['messaging'].repair_all_chat_summaries()
        click.echo(f"채팅 요약 복구: {repaired}건")

    # =====================================================================================
    # 9. 로깅 및 앱 반환
    # =====================================================================================
    if not app.debug:
        logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]')

    logging.info(f"Flask app created for '{config_name}' environment.")

    return app
