"""
Module: bundle_kernel.db.triggers
Responsibility: Installing, removing and verifying the PostgreSQL triggers
    that make bundle history append-only (Layer 2 of 2).  This is the
    database-level complement to the ORM listeners in db/immutability.py.
Architecture position: Kernel > DB.  MUST NOT import from models/,
    services/, selectors/, domain/, or outer layers.

Invariants enforced:
    HISTORY_APPEND_ONLY -- bundle_history rows: no UPDATE, no DELETE.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on violation (surfaces as
      sqlalchemy.exc.InternalError / DBAPIError).
    - Only PostgreSQL is supported; SQLite relies on the ORM layer.

Audit relevance:
    Raw SQL and bulk statements bypass ORM events.  The triggers close that
    gap so the history ledger stays intact even when the application layer
    is bypassed.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine

ALL_TRIGGER_NAMES = [
    "trg_bundle_history_immutability_update",
    "trg_bundle_history_immutability_delete",
]

_INSTALL_SQL = """
CREATE OR REPLACE FUNCTION bundle_history_reject_mutation()
RETURNS trigger AS $$
BEGIN
    RAISE EXCEPTION 'bundle_history is append-only: % of row % rejected',
        TG_OP, OLD.id
        USING ERRCODE = 'integrity_constraint_violation';
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS trg_bundle_history_immutability_update ON bundle_history;
CREATE TRIGGER trg_bundle_history_immutability_update
    BEFORE UPDATE ON bundle_history
    FOR EACH ROW EXECUTE FUNCTION bundle_history_reject_mutation();

DROP TRIGGER IF EXISTS trg_bundle_history_immutability_delete ON bundle_history;
CREATE TRIGGER trg_bundle_history_immutability_delete
    BEFORE DELETE ON bundle_history
    FOR EACH ROW EXECUTE FUNCTION bundle_history_reject_mutation();
"""

_DROP_SQL = """
DROP TRIGGER IF EXISTS trg_bundle_history_immutability_update ON bundle_history;
DROP TRIGGER IF EXISTS trg_bundle_history_immutability_delete ON bundle_history;
DROP FUNCTION IF EXISTS bundle_history_reject_mutation();
"""


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install the history immutability triggers.

    Preconditions: Tables exist.  Engine is connected to PostgreSQL.
    Postconditions: Every trigger in ALL_TRIGGER_NAMES is installed
        (CREATE OR REPLACE / DROP IF EXISTS make this idempotent).
    """
    with engine.connect() as conn:
        conn.execute(text(_INSTALL_SQL))
        conn.commit()


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove the history immutability triggers.

    WARNING: Only for teardown of test databases.
    """
    with engine.connect() as conn:
        conn.execute(text(_DROP_SQL))
        conn.commit()


def get_installed_triggers(engine: Engine) -> list[str]:
    """Return the names of installed history triggers, sorted."""
    check_sql = text(
        "SELECT tgname FROM pg_trigger WHERE tgname = ANY(:names) ORDER BY tgname"
    )
    with engine.connect() as conn:
        result = conn.execute(check_sql, {"names": ALL_TRIGGER_NAMES})
        return [row[0] for row in result]


def triggers_installed(engine: Engine) -> bool:
    """True iff every history trigger is present in pg_trigger."""
    return len(get_installed_triggers(engine)) == len(ALL_TRIGGER_NAMES)
