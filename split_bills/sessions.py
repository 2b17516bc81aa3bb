import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from werkzeug.security import check_password_hash, generate_password_hash

from .models import ExpenseLine, parse_people

logger = logging.getLogger(__name__)

CREATE_SESSIONS_TABLE = """
CREATE TABLE IF NOT EXISTS sessions (
    id VARCHAR(36) PRIMARY KEY,
    edit_secret VARCHAR(255) NOT NULL,
    people LONGTEXT NOT NULL,
    fund_amount DOUBLE NOT NULL DEFAULT 0,
    tip_percentage DOUBLE NOT NULL DEFAULT 0,
    created_at DATETIME NOT NULL,
    last_accessed_at DATETIME NOT NULL
)
"""

INSERT_SESSION = """
INSERT INTO sessions (id, edit_secret, people, fund_amount, tip_percentage, created_at, last_accessed_at)
VALUES (%s, %s, %s, %s, %s, %s, %s)
"""

TOUCH_SESSION = "UPDATE sessions SET last_accessed_at=%s WHERE id=%s"

SELECT_SESSION = "SELECT id, people, fund_amount, tip_percentage FROM sessions WHERE id=%s"

SELECT_EDIT_SECRET = "SELECT edit_secret FROM sessions WHERE id=%s"

UPDATE_SESSION = """
UPDATE sessions
SET people=%s, fund_amount=%s, tip_percentage=%s, last_accessed_at=%s
WHERE id=%s
"""


class SessionNotFound(LookupError):
    pass


class SessionForbidden(PermissionError):
    pass


@dataclass
class SessionData:
    people: List[ExpenseLine]
    fund_amount: float = 0.0
    tip_percentage: float = 0.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _dump_people(people: List[ExpenseLine]) -> str:
    return json.dumps([line.to_dict() for line in people])


class SessionStore:
    """Shared split sessions, editable only by holders of the edit secret"""

    def __init__(self, database) -> None:
        self.db = database

    def init_schema(self) -> None:
        self.db.execute(CREATE_SESSIONS_TABLE)

    def create(self, people: List[ExpenseLine], fund_amount: float = 0.0, tip_percentage: float = 0.0) -> Tuple[str, str]:
        session_id = str(uuid.uuid4())
        edit_secret = str(uuid.uuid4())
        now = _utcnow()

        self.db.execute(
            INSERT_SESSION,
            (
                session_id,
                generate_password_hash(edit_secret),
                _dump_people(people),
                fund_amount,
                tip_percentage,
                now,
                now,
            ),
        )
        logger.info("Created session %s with %d lines", session_id, len(people))
        return session_id, edit_secret

    def get(self, session_id: str) -> SessionData:
        self.db.execute(TOUCH_SESSION, (_utcnow(), session_id))
        row = self.db.fetch_one(SELECT_SESSION, (session_id,))
        if not row:
            raise SessionNotFound(session_id)

        return SessionData(
            people=parse_people(json.loads(row["people"])),
            fund_amount=float(row["fund_amount"] or 0),
            tip_percentage=float(row["tip_percentage"] or 0),
        )

    def update(
        self,
        session_id: str,
        edit_secret: Optional[str],
        people: List[ExpenseLine],
        fund_amount: float = 0.0,
        tip_percentage: float = 0.0,
    ) -> None:
        if not edit_secret:
            raise SessionForbidden(session_id)

        row = self.db.fetch_one(SELECT_EDIT_SECRET, (session_id,))
        if not row:
            raise SessionNotFound(session_id)
        if not check_password_hash(row["edit_secret"], edit_secret):
            logger.warning("Rejected update of session %s: edit secret mismatch", session_id)
            raise SessionForbidden(session_id)

        self.db.execute(
            UPDATE_SESSION,
            (_dump_people(people), fund_amount, tip_percentage, _utcnow(), session_id),
        )
