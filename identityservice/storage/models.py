from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, Set


@dataclass
class User:
    id: str
    username: str
    password_hash: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    dob: Optional[date] = None
    roles: Set[str] = field(default_factory=set)
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class Role:
    name: str
    description: Optional[str] = None
