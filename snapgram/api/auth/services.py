# snapgram/api/auth/services.py
import uuid
import logging
from dataclasses import asdict
from typing import Dict, Any, Optional

from firebase_admin import firestore, auth as firebase_auth
from google.api_core import exceptions as gcp_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter
from werkzeug.security import generate_password_hash, check_password_hash

from snapgram.api.users.services import UserService
from snapgram.core.errors import (
    DuplicateEmailError, InvalidCredentialsError, InvalidInputError, StoreError, UnauthenticatedError,
)
from snapgram.models.user import Account
from snapgram.utils.datetime_utils import DateTimeUtils


class AuthService:
    """
    이메일/비밀번호 가입과 로그인, Firebase ID 토큰 교환을 담당합니다.
    JWT 발급은 라우트에서 flask-jwt-extended로 처리하고, 여기서는 사용자 식별만 합니다.
    """
    def __init__(self, user_service: UserService, db=None):
        self.db = db if db is not None else firestore.client()
        self.accounts_ref = self.db.collection('accounts')
        self.user_service = user_service

    def signup(self, username: str, email: str, password: str) -> Dict[str, Any]:
        """
        계정을 생성합니다. 공개 프로필(users)과 로그인 정보(accounts)를
        하나의 WriteBatch로 함께 저장합니다.
        """
        email = (email or '').strip().lower()
        if not email or not password:
            raise InvalidInputError("이메일과 비밀번호는 필수입니다.")
        if self._find_account_by_email(email) is not None:
            raise DuplicateEmailError()

        uid = str(uuid.uuid4())
        account = Account(uid=uid, email=email, password_hash=generate_password_hash(password))

        batch = self.db.batch()
        user = self.user_service.create_profile(uid, username, bio='', batch=batch)
        batch.set(self.accounts_ref.document(uid), DateTimeUtils.for_firestore(asdict(account)))
        try:
            batch.commit()
        except gcp_exceptions.GoogleAPICallError as e:
            logging.error(f"회원가입 저장 실패 (email: {email}): {e}", exc_info=True)
            raise StoreError()

        logging.info(f"신규 회원가입 완료: {uid}")
        return user

    def login(self, email: str, password: str) -> Dict[str, Any]:
        """이메일과 비밀번호를 검증하고 공개 프로필을 반환합니다."""
        account_doc = self._find_account_by_email((email or '').strip().lower())
        if account_doc is None:
            raise InvalidCredentialsError()

        account = Account.from_firestore(account_doc.to_dict())
        if not check_password_hash(account.password_hash, password or ''):
            raise InvalidCredentialsError()

        user = self.user_service.get_profile(account.uid)
        if not user:
            logging.warning(f"계정은 있으나 프로필이 없습니다 (uid: {account.uid})")
            raise InvalidCredentialsError()
        return user

    def exchange_firebase_token(self, id_token: str) -> str:
        """
        Firebase Auth가 발급한 ID 토큰(익명 로그인 포함)을 검증하고 uid를 반환합니다.
        프로필 생성 여부와는 무관하게 식별만 수행합니다.
        """
        try:
            decoded = firebase_auth.verify_id_token(id_token)
        except (firebase_auth.InvalidIdTokenError, firebase_auth.UserDisabledError, ValueError) as e:
            logging.warning(f"Firebase ID 토큰 검증 실패: {e}")
            raise UnauthenticatedError("유효하지 않은 Firebase 토큰입니다.")
        except firebase_auth.CertificateFetchError as e:
            logging.error(f"Firebase 공개 키 조회 실패: {e}", exc_info=True)
            raise StoreError()
        return decoded['uid']

    def _find_account_by_email(self, email: str):
        query = self.accounts_ref.where(filter=FieldFilter('email', '==', email)).limit(1).stream()
        return next(iter(query), None)
