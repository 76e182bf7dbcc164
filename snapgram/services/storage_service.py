# snapgram/services/storage_service.py
import uuid
import logging
from flask import Flask
from firebase_admin import storage

from snapgram.core.errors import InvalidInputError, StoreError


class StorageService:
    """
    Firebase Storage 관련 로직을 담당하는 서비스 클래스입니다.
    게시물 이미지를 버킷에 올리고 공개 URL을 돌려줍니다.
    """
    # 허용하는 이미지 MIME 타입과 저장 확장자
    ALLOWED_CONTENT_TYPES = {
        'image/jpeg': 'jpg',
        'image/png': 'png',
        'image/gif': 'gif',
        'image/webp': 'webp',
    }

    def __init__(self):
        """실제 버킷 객체는 init_app 메서드를 통해 주입됩니다."""
        self.bucket = None

    def init_app(self, app: Flask, bucket=None):
        """
        Flask 앱 초기화 과정에서 호출되어 Storage 버킷을 설정합니다.

        :param app: Flask 애플리케이션 객체
        :param bucket: 테스트 등에서 직접 주입할 버킷 객체
        """
        if bucket is not None:
            self.bucket = bucket
            return

        bucket_name = app.config.get('FIREBASE_STORAGE_BUCKET')
        if not bucket_name:
            raise ValueError("FIREBASE_STORAGE_BUCKET 설정이 .env 또는 설정 파일에 필요합니다.")

        self.bucket = storage.bucket(bucket_name)
        logging.info("StorageService: Firebase Storage 서비스가 성공적으로 초기화되었습니다.")

    def upload_post_image(self, user_id: str, file_storage) -> str:
        """
        multipart로 받은 이미지를 posts/{user_id}/ 아래에 저장하고 공개 URL을 반환합니다.

        :param user_id: 업로드한 사용자 ID
        :param file_storage: werkzeug FileStorage 객체
        :return: 공개적으로 접근 가능한 URL
        """
        if not self.bucket:
            raise RuntimeError("StorageService가 초기화되지 않았습니다. init_app을 먼저 호출해주세요.")

        content_type = file_storage.mimetype
        extension = self.ALLOWED_CONTENT_TYPES.get(content_type)
        if not extension:
            raise InvalidInputError(f"지원하지 않는 이미지 형식입니다: {content_type}")

        blob = self.bucket.blob(f"posts/{user_id}/{uuid.uuid4()}.{extension}")
        try:
            blob.upload_from_file(file_storage.stream, content_type=content_type)
            blob.make_public()
        except Exception as e:
            logging.error(f"게시물 이미지 업로드 실패 (user_id: {user_id}): {e}", exc_info=True)
            raise StoreError("이미지 업로드 중 오류가 발생했습니다.")
        return blob.public_url
