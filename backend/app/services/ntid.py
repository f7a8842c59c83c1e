"""NeoLink tracking IDs: institution prefix + YYYY + MM + 4 random digits."""
import random
import re
from datetime import datetime
from typing import Optional

NTID_PATTERN = re.compile(r"^[A-Z]{3}\d{10}$")


def generate_ntid(institution_name: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    letters = re.sub(r"[^A-Za-z]", "", institution_name or "")
    prefix = letters[:3].upper().ljust(3, "X")
    serial = random.randint(1000, 9999)
    return f"{prefix}{now.year:04d}{now.month:02d}{serial}"


def is_valid_ntid(ntid: Optional[str]) -> bool:
    return bool(ntid) and NTID_PATTERN.match(ntid) is not None


def parse_ntid(ntid: str) -> Optional[dict]:
    if not is_valid_ntid(ntid):
        return None
    return {
        "prefix": ntid[:3],
        "year": ntid[3:7],
        "month": ntid[7:9],
        "serial": ntid[9:13],
    }
