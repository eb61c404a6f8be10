"""
Auth collaborators: in-process user store and a remote auth service client.

``LocalAuthService`` keeps users in the application database, hashes
passwords with Werkzeug and issues RS256 JWTs.  ``RemoteAuthService`` talks
to a standalone auth service over HTTP (``/api/auth/register``, ``/login``
and ``/verify``) and turns transport problems into
``UPSTREAM_UNAVAILABLE`` failures instead of retrying.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urljoin

import requests
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from .. import db
from ..errors import Failure, FailureKind
from ..jwt import create_token, verify_token
from ..models import User
from . import Identity, Rejected

logger = logging.getLogger(__name__)

INVALID_TOKEN = "Invalid or expired token"
INVALID_LOGIN = "Invalid username or password"


class LocalAuthService:
    """Auth collaborator backed by the ``users`` table and local RSA keys."""

    def __init__(
        self,
        private_key: str,
        public_key: str,
        expiry_hours: int = 24,
        leeway: int = 30,
    ) -> None:
        self._private_key = private_key
        self._public_key = public_key
        self._expiry_hours = expiry_hours
        self._leeway = leeway

    def verify_credential(self, token: str) -> Identity | Rejected | Failure:
        payload = verify_token(token, self._public_key, leeway=self._leeway)
        if payload is None:
            return Rejected(INVALID_TOKEN)
        return Identity(user_id=payload["user_id"], username=payload["username"])

    def issue_credential(self, identity: Identity) -> str | Failure:
        return create_token(
            user_id=identity.user_id,
            username=identity.username,
            private_key=self._private_key,
            expiry_hours=self._expiry_hours,
        )

    def register(self, username: str, email: str, password: str) -> dict[str, Any] | Failure:
        try:
            if db.session.scalar(select(User).where(User.username == username)):
                return Failure.conflict("Username already exists")
            if db.session.scalar(select(User).where(User.email == email)):
                return Failure.conflict("Email already exists")

            user = User(username=username, email=email)
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration of the same name.
            db.session.rollback()
            return Failure.conflict("Username or email already exists")
        except OperationalError:
            db.session.rollback()
            logger.exception("User store unavailable during registration")
            return Failure.upstream_unavailable("User store unavailable")

        logger.info("Registered user_id=%s", user.id)
        return user.to_dict()

    def login(self, username: str, password: str) -> dict[str, Any] | Failure:
        try:
            user = db.session.scalar(select(User).where(User.username == username))
        except OperationalError:
            db.session.rollback()
            logger.exception("User store unavailable during login")
            return Failure.upstream_unavailable("User store unavailable")

        # Same message for unknown user and wrong password.
        if not user or not user.check_password(password):
            return Failure.unauthorized(INVALID_LOGIN)

        token = self.issue_credential(Identity(user_id=user.id, username=user.username))
        if isinstance(token, Failure):
            return token
        return {"token": token, "user": user.to_dict()}


class RemoteAuthService:
    """Auth collaborator that delegates to a standalone auth service over HTTP."""

    def __init__(self, base_url: str, timeout: int = 10) -> None:
        self._base_url = base_url.rstrip("/") + "/"
        self._timeout = timeout

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response | Failure:
        url = urljoin(self._base_url, path.lstrip("/"))
        try:
            return requests.request(method=method, url=url, timeout=self._timeout, **kwargs)
        except requests.Timeout:
            logger.warning("Auth service timed out: %s %s", method, url)
            return Failure.upstream_unavailable("Auth service timed out")
        except requests.RequestException as exc:
            logger.warning("Auth service unreachable: %s %s (%s)", method, url, exc)
            return Failure.upstream_unavailable("Auth service unavailable")

    @staticmethod
    def _relay_failure(response: requests.Response) -> Failure:
        """Translate a non-2xx auth service answer into a failure value."""
        if response.status_code >= 500:
            return Failure.upstream_unavailable("Auth service error")

        try:
            body = response.json()
        except ValueError:
            body = {}
        message = None
        if isinstance(body, dict):
            message = body.get("message") or body.get("error")

        kind = {
            400: FailureKind.BAD_REQUEST,
            401: FailureKind.UNAUTHORIZED,
            404: FailureKind.NOT_FOUND,
            409: FailureKind.CONFLICT,
        }.get(response.status_code, FailureKind.UPSTREAM_UNAVAILABLE)
        return Failure(kind, message if isinstance(message, str) else None)

    @staticmethod
    def _json_object(response: requests.Response) -> dict[str, Any] | Failure:
        try:
            body = response.json()
        except ValueError:
            return Failure.upstream_unavailable("Auth service returned invalid JSON")
        if not isinstance(body, dict):
            return Failure.upstream_unavailable("Auth service returned invalid JSON")
        return body

    def verify_credential(self, token: str) -> Identity | Rejected | Failure:
        response = self._request(
            "GET",
            "/api/auth/verify",
            headers={"Authorization": f"Bearer {token}"},
        )
        if isinstance(response, Failure):
            return response
        if response.status_code == 401:
            return Rejected(INVALID_TOKEN)
        if response.status_code != 200:
            return Failure.upstream_unavailable("Auth service error")

        body = self._json_object(response)
        if isinstance(body, Failure):
            return body
        user_id = body.get("user_id")
        username = body.get("username")
        if not isinstance(user_id, int) or not isinstance(username, str):
            return Failure.upstream_unavailable("Auth service returned an invalid identity")
        return Identity(user_id=user_id, username=username)

    def issue_credential(self, identity: Identity) -> str | Failure:
        # Tokens only come out of the remote login endpoint.
        logger.error("issue_credential is not available on the remote auth service")
        return Failure.internal()

    def register(self, username: str, email: str, password: str) -> dict[str, Any] | Failure:
        response = self._request(
            "POST",
            "/api/auth/register",
            json={"username": username, "email": email, "password": password},
        )
        if isinstance(response, Failure):
            return response
        if response.status_code not in (200, 201):
            return self._relay_failure(response)

        body = self._json_object(response)
        if isinstance(body, Failure):
            return body
        return body.get("user", body)

    def login(self, username: str, password: str) -> dict[str, Any] | Failure:
        response = self._request(
            "POST",
            "/api/auth/login",
            json={"username": username, "password": password},
        )
        if isinstance(response, Failure):
            return response
        if response.status_code != 200:
            return self._relay_failure(response)

        body = self._json_object(response)
        if isinstance(body, Failure):
            return body
        if not isinstance(body.get("token"), str):
            return Failure.upstream_unavailable("Auth service returned no token")
        return {"token": body["token"], "user": body.get("user")}
