# snapgram/core/errors.py
"""
도메인 예외 정의

서비스 계층은 아래 예외만 발생시키고, 라우트와 전역 에러 핸들러가
`error_code`/HTTP 상태 코드로 변환합니다. 어떤 예외도 자동 재시도하지 않습니다.
"""
from flask import jsonify


class SnapgramError(Exception):
    """모든 도메인 예외의 기반 클래스"""
    error_code = "INTERNAL_SERVER_ERROR"
    status_code = 500
    default_message = "서버 내부 오류가 발생했습니다."

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> dict:
        return {"error_code": self.error_code, "message": self.message}


class UnauthenticatedError(SnapgramError):
    error_code = "UNAUTHENTICATED"
    status_code = 401
    default_message = "로그인이 필요합니다."


class InvalidCredentialsError(UnauthenticatedError):
    error_code = "INVALID_CREDENTIALS"
    default_message = "이메일 또는 비밀번호가 올바르지 않습니다."


class InvalidInputError(SnapgramError):
    """짧은 사용자명/캡션, 빈 댓글/메시지 등 로컬 검증 실패"""
    error_code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "요청 값이 올바르지 않습니다."


class ConflictError(SnapgramError):
    error_code = "CONFLICT"
    status_code = 409


class DuplicateUsernameError(ConflictError):
    error_code = "DUPLICATE_USERNAME"
    default_message = "이미 사용 중인 사용자명입니다."


class DuplicateEmailError(ConflictError):
    error_code = "DUPLICATE_EMAIL"
    default_message = "이미 가입된 이메일입니다."


class ProfileExistsError(ConflictError):
    error_code = "PROFILE_ALREADY_EXISTS"
    default_message = "이미 프로필이 생성된 계정입니다."


class NotFoundError(SnapgramError):
    error_code = "NOT_FOUND"
    status_code = 404
    default_message = "요청한 리소스를 찾을 수 없습니다."


class ForbiddenError(SnapgramError):
    error_code = "FORBIDDEN"
    status_code = 403
    default_message = "권한이 없습니다."


class StoreError(SnapgramError):
    """Firestore/Storage 호출 실패. 사용자에게는 일반 메시지만 노출합니다."""
    error_code = "STORE_ERROR"
    status_code = 503
    default_message = "일시적인 저장소 오류가 발생했습니다. 잠시 후 다시 시도해주세요."


def error_response(err: SnapgramError):
    """도메인 예외를 (JSON, 상태 코드) 응답 튜플로 변환합니다."""
    return jsonify(err.to_dict()), err.status_code
