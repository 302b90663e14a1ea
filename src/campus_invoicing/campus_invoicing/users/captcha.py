from __future__ import annotations

import logging
from typing import Optional, Protocol

import requests

logger = logging.getLogger(__name__)

RECAPTCHA_VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"


class CaptchaVerifier(Protocol):
    def verify(self, token: Optional[str], *, remote_ip: Optional[str] = None) -> bool:
        raise NotImplementedError


class RecaptchaVerifier(CaptchaVerifier):
    """Google reCAPTCHA check. Without a secret key every token passes."""

    def __init__(self, secret_key: Optional[str], *, timeout: float = 10.0):
        self._secret_key = secret_key or None
        self._timeout = timeout

    @property
    def enabled(self) -> bool:
        return self._secret_key is not None

    def verify(self, token: Optional[str], *, remote_ip: Optional[str] = None) -> bool:
        if not self.enabled:
            return True
        if not token:
            return False

        data = {"secret": self._secret_key, "response": token}
        if remote_ip:
            data["remoteip"] = remote_ip

        try:
            r = requests.post(RECAPTCHA_VERIFY_URL, data=data, timeout=self._timeout)
        except requests.RequestException:
            logger.warning("reCAPTCHA verification unavailable", exc_info=True)
            return False

        if r.status_code != 200:
            logger.warning("reCAPTCHA answered HTTP %s", r.status_code)
            return False
        return bool(r.json().get("success"))
