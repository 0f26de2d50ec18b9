"""
Tests for Firebase ID token verification and staff resolution
"""

import asyncio
import base64
import json
import time
import unittest
from datetime import datetime
from unittest.mock import AsyncMock, patch

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.x509.oid import NameOID
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from clinic_booking import auth

from .support import DatabaseTestCase

PROJECT_ID = "clinic-booking-test"


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _make_signing_key():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "securetoken.system.gserviceaccount.com")])
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(datetime(2020, 1, 1))
        .not_valid_after(datetime(2040, 1, 1))
        .sign(key, hashes.SHA256())
    )
    return key, certificate.public_bytes(serialization.Encoding.PEM).decode()


SIGNING_KEY, CERTIFICATE_PEM = _make_signing_key()
PUBLIC_KEYS = {"key-1": CERTIFICATE_PEM}


def make_token(kid="key-1", alg="RS256", **overrides) -> str:
    now = int(time.time())
    claims = {
        "iss": f"https://securetoken.google.com/{PROJECT_ID}",
        "aud": PROJECT_ID,
        "sub": "staff-uid",
        "email": "desk@sunrise.test",
        "iat": now - 10,
        "exp": now + 3600,
        **overrides,
    }
    header = _b64(json.dumps({"alg": alg, "kid": kid}).encode())
    payload = _b64(json.dumps(claims).encode())
    signature = SIGNING_KEY.sign(f"{header}.{payload}".encode(), padding.PKCS1v15(), hashes.SHA256())
    return f"{header}.{payload}.{_b64(signature)}"


class FirebaseTestMixin:
    def setUp(self):
        super().setUp()
        patches = [
            patch.object(auth, "FIREBASE_PROJECT_ID", PROJECT_ID),
            patch.object(auth, "get_google_public_keys", AsyncMock(return_value=PUBLIC_KEYS)),
        ]
        for p in patches:
            p.start()
            self.addCleanup(p.stop)

    def verify(self, token):
        return asyncio.run(auth.verify_firebase_token(token))

    def assertRejected(self, token, status_code=401):
        with self.assertRaises(HTTPException) as ctx:
            self.verify(token)
        self.assertEqual(ctx.exception.status_code, status_code)
        return ctx.exception


class TestVerifyFirebaseToken(FirebaseTestMixin, unittest.TestCase):
    def test_valid_token(self):
        claims = self.verify(make_token())

        self.assertEqual(claims["sub"], "staff-uid")

    def test_tampered_payload(self):
        header, _, signature = make_token().split(".")
        forged = _b64(json.dumps({"sub": "someone-else", "aud": PROJECT_ID}).encode())

        exc = self.assertRejected(f"{header}.{forged}.{signature}")

        self.assertEqual(exc.detail, "Invalid token signature")

    def test_wrong_audience(self):
        exc = self.assertRejected(make_token(aud="another-project"))

        self.assertEqual(exc.detail, "Invalid token audience")

    def test_wrong_issuer(self):
        self.assertRejected(make_token(iss="https://accounts.example.com"))

    def test_expired(self):
        exc = self.assertRejected(make_token(exp=int(time.time()) - 60))

        self.assertEqual(exc.headers, {"X-Token-Expired": "true"})

    def test_issued_in_the_future(self):
        self.assertRejected(make_token(iat=int(time.time()) + 3600))

    def test_unknown_key_refreshes_then_rejects(self):
        exc = self.assertRejected(make_token(kid="key-2"))

        self.assertEqual(exc.detail, "Unable to verify token signature")
        auth.get_google_public_keys.assert_awaited_with(refresh=True)

    def test_unsupported_algorithm(self):
        self.assertRejected(make_token(alg="HS256"))

    def test_malformed(self):
        self.assertRejected("not-a-token")

    def test_firebase_not_configured(self):
        with patch.object(auth, "FIREBASE_PROJECT_ID", None):
            self.assertRejected(make_token(), status_code=500)


class TestGetCurrentStaff(FirebaseTestMixin, DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.clinic = self.make_clinic()

    def current_staff(self, token=None):
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials=token) if token else None
        return asyncio.run(auth.get_current_staff(credentials=credentials, db=self.db))

    def test_resolves_staff(self):
        staff = self.make_staff(self.clinic, role="RECEPTIONIST")

        resolved = self.current_staff(make_token())

        self.assertEqual(resolved.id, staff.id)
        self.assertEqual(resolved.clinic_id, self.clinic.id)

    def test_missing_credentials(self):
        with self.assertRaises(HTTPException) as ctx:
            self.current_staff()

        self.assertEqual(ctx.exception.status_code, 401)

    def test_unknown_account(self):
        with self.assertRaises(HTTPException) as ctx:
            self.current_staff(make_token(sub="stranger"))

        self.assertEqual(ctx.exception.status_code, 403)

    def test_inactive_account(self):
        staff = self.make_staff(self.clinic)
        staff.is_active = False
        self.db.commit()

        with self.assertRaises(HTTPException) as ctx:
            self.current_staff(make_token())

        self.assertEqual(ctx.exception.status_code, 403)

    def test_admin_check(self):
        receptionist = self.make_staff(self.clinic, role="RECEPTIONIST")

        with self.assertRaises(HTTPException) as ctx:
            asyncio.run(auth.get_current_admin(staff=receptionist))

        self.assertEqual(ctx.exception.status_code, 403)
        doctor = self.make_staff(self.clinic, role="DOCTOR", uid="doctor-uid")
        self.assertIs(asyncio.run(auth.get_current_admin(staff=doctor)), doctor)
