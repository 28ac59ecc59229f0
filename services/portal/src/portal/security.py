from __future__ import annotations

import re
import secrets

import bcrypt

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*])[A-Za-z\d@$!%*]{8,}$")
PASSWORD_POLICY_MESSAGE = (
    "password must be at least 8 characters long and contain a lowercase letter, "
    "an uppercase letter, a digit and one of @$!%*"
)


def hash_secret(value: str) -> str:
    return bcrypt.hashpw(value.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_secret(value: str, hashed: str | None) -> bool:
    if not value or not hashed:
        return False
    try:
        return bcrypt.checkpw(value.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def generate_otp() -> str:
    return f"{secrets.randbelow(900000) + 100000}"


def is_strong_password(password: str) -> bool:
    return bool(PASSWORD_PATTERN.match(password))
