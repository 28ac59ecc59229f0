from __future__ import annotations

import importlib.util

# Portal and emailer request models use pydantic's EmailStr.
# Skip collecting them when email-validator is not installed.
if importlib.util.find_spec("email_validator") is None:
    collect_ignore_glob = [
        "services/emailer/tests/*",
        "services/portal/tests/*",
        "tests/bdd/*",
        "tests/test_smoke_harness.py",
    ]
