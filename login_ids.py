"""
Employee login ID issuance.

Format: OI + initials(4) + year + serial (zero-padded to 4, wider past 9999).
Example: OIJODO20220001

The per-year serial lives in ``login_id_serials`` and is only ever changed by a
single atomic statement, so concurrent requests (threads or processes) never
observe the same value. Allocation runs inside the caller's transaction: if the
caller rolls back, the serial is returned to the pool.
"""
from __future__ import annotations

import logging
import secrets
import string
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import LoginIdSerial, User
from utils import InvalidInputError, StorageError


_log = logging.getLogger("login_ids")

LOGIN_ID_PREFIX = "OI"
INITIALS_FILLER = "X"
SERIAL_WIDTH = 4

SECRET_SYMBOLS = "!@#$%^&*"
_SECRET_CLASSES = (string.ascii_uppercase, string.ascii_lowercase, string.digits, SECRET_SYMBOLS)
_SECRET_ALPHABET = "".join(_SECRET_CLASSES)
MIN_SECRET_LENGTH = len(_SECRET_CLASSES)

# Dialects with INSERT .. ON CONFLICT and UPDATE .. RETURNING.
_UPSERT_INSERTS = {"sqlite": sqlite.insert, "postgresql": postgresql.insert}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_year(year: Any) -> int:
    if not _is_int(year) or year <= 0:
        raise InvalidInputError("year must be a positive integer")
    return year


def _dialect(db):
    return db.get_bind().dialect


def _has_atomic_upsert(db) -> bool:
    d = _dialect(db)
    return d.name in _UPSERT_INSERTS and bool(getattr(d, "update_returning", False))


# ---------------------------------------------------------------------------
# Counter storage
# ---------------------------------------------------------------------------

def get_year_serial(db, year: int) -> LoginIdSerial | None:
    return db.execute(
        select(LoginIdSerial).where(LoginIdSerial.year == year).execution_options(populate_existing=True)
    ).scalar_one_or_none()


def create_year_serial(db, year: int, serial: int = 1) -> int | None:
    """Insert the counter row. Returns None if a concurrent writer created it first."""
    if not _has_atomic_upsert(db):
        try:
            with db.begin_nested():
                db.add(LoginIdSerial(year=year, serial=serial))
        except IntegrityError:
            _log.info("counter row created concurrently year=%s", year)
            return None
        return serial

    insert = _UPSERT_INSERTS[_dialect(db).name]
    stmt = (
        insert(LoginIdSerial)
        .values(year=year, serial=serial)
        .on_conflict_do_nothing(index_elements=["year"])
        .returning(LoginIdSerial.serial)
    )
    return db.execute(stmt).scalar_one_or_none()


def atomic_increment_year_serial(db, year: int) -> int | None:
    """Add one to the year's serial and return the new value; None if the row is missing."""
    if _has_atomic_upsert(db):
        stmt = (
            update(LoginIdSerial)
            .where(LoginIdSerial.year == year)
            .values(serial=LoginIdSerial.serial + 1)
            .returning(LoginIdSerial.serial)
            .execution_options(synchronize_session=False)
        )
        return db.execute(stmt).scalar_one_or_none()

    row = db.execute(
        select(LoginIdSerial).where(LoginIdSerial.year == year).with_for_update(of=LoginIdSerial)
    ).scalar_one_or_none()
    if row is None:
        return None
    row.serial = int(row.serial or 0) + 1
    db.flush()
    return int(row.serial)


def user_login_id_exists(db, login_id: str) -> bool:
    try:
        found = db.execute(select(User.userId).where(User.loginId == login_id).limit(1)).first()
    except SQLAlchemyError as e:
        raise StorageError("Could not check login ID") from e
    return found is not None


def allocate_next_serial(db, year: int) -> int:
    year = _validate_year(year)
    try:
        serial = atomic_increment_year_serial(db, year)
        if serial is None:
            serial = create_year_serial(db, year, serial=1)
        if serial is None:
            # Lost the race to create the row; it exists now.
            serial = atomic_increment_year_serial(db, year)
    except SQLAlchemyError as e:
        _log.exception("serial allocation failed year=%s", year)
        raise StorageError("Could not allocate login ID serial") from e

    if serial is None:
        _log.error("serial allocation returned no row year=%s", year)
        raise StorageError("Could not allocate login ID serial")

    _log.debug("allocated serial year=%s serial=%s", year, serial)
    return int(serial)


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------

def _name_part(name: Any) -> str:
    return str(name or "").strip().upper()[:2].ljust(2, INITIALS_FILLER)


def derive_initials(first_name: Any, last_name: Any) -> str:
    return _name_part(first_name) + _name_part(last_name)


def format_login_id(initials: str, year: int, serial: int) -> str:
    return f"{LOGIN_ID_PREFIX}{initials}{year}{serial:0{SERIAL_WIDTH}d}"


def compose_login_id(db, first_name: Any, last_name: Any, year: int) -> str:
    initials = derive_initials(first_name, last_name)
    serial = allocate_next_serial(db, year)
    return format_login_id(initials, year, serial)


# ---------------------------------------------------------------------------
# Temporary passwords
# ---------------------------------------------------------------------------

def generate_secret(length: int = 12) -> str:
    """Random string with at least one upper, lower, digit and symbol."""
    if not _is_int(length) or length < MIN_SECRET_LENGTH:
        raise InvalidInputError(f"length must be an integer >= {MIN_SECRET_LENGTH}")

    chars = [secrets.choice(pool) for pool in _SECRET_CLASSES]
    chars += [secrets.choice(_SECRET_ALPHABET) for _ in range(length - len(chars))]
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)
