# snapgram/core/config.py

import os
from datetime import timedelta


class Config:
    """모든 환경 설정의 기반이 되는 공통 설정 클래스입니다."""
    # JWT 서명 키. Bearer 토큰의 위변조를 막기 위해 반드시 환경 변수로 주입합니다.
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY')
    # Access 토큰 유효 기간은 1일입니다.
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=1)

    FIREBASE_CREDENTIALS_PATH = os.getenv('FIREBASE_CREDENTIALS_PATH')
    FIREBASE_STORAGE_BUCKET = os.getenv('FIREBASE_STORAGE_BUCKET')

    # 업로드 이미지 최대 크기 (multipart 요청 전체 기준)
    MAX_CONTENT_LENGTH = int(os.getenv('MAX_UPLOAD_BYTES', 10 * 1024 * 1024))

    # 도메인 규칙
    USERNAME_MIN_LENGTH = 3
    CAPTION_MIN_LENGTH = 5
    FEED_PAGE_SIZE = int(os.getenv('FEED_PAGE_SIZE', 20))
    FEED_PAGE_SIZE_MAX = 100
    CHAT_LIST_LIMIT = int(os.getenv('CHAT_LIST_LIMIT', 50))
    USER_SEARCH_LIMIT = 20
    # SSE 연결 유지용 주석 이벤트 간격(초)
    SSE_KEEPALIVE_SECONDS = 15


class DevelopmentConfig(Config):
    """개발 환경을 위한 설정 클래스입니다."""
    DEBUG = True
    FIREBASE_CREDENTIALS_PATH = os.getenv('DEV_FIREBASE_CREDENTIALS_PATH', Config.FIREBASE_CREDENTIALS_PATH)


class TestingConfig(Config):
    """테스트 환경을 위한 설정 클래스입니다. Firestore는 테스트 더블을 주입받습니다."""
    TESTING = True
    DEBUG = False
    JWT_SECRET_KEY = os.getenv('TEST_JWT_SECRET_KEY', 'snapgram-testing-secret-key-0123456789')
    FIREBASE_CREDENTIALS_PATH = os.getenv('TEST_FIREBASE_CREDENTIALS_PATH')
    FIREBASE_STORAGE_BUCKET = 'snapgram-test.appspot.com'
    SSE_KEEPALIVE_SECONDS = 0.05


class ProductionConfig(Config):
    """운영 환경 설정. 디버그를 끄고 필수 키를 create_app에서 검증합니다."""
    DEBUG = False


# FLASK_ENV 값에 따라 create_app에서 설정 클래스를 선택합니다.
config_by_name = dict(
    development=DevelopmentConfig,
    testing=TestingConfig,
    production=ProductionConfig,
)
