from dataclasses import dataclass
from typing import Optional


@dataclass
class Identity:
    user_id: str
    email: Optional[str] = None
