import logging

from sqlalchemy.exc import OperationalError
from sqlmodel import Session

from db import unit_of_work
from schemas import BatchReport

logger = logging.getLogger(__name__)


def process_record(session: Session, report: BatchReport, record: str, operation) -> tuple[bool, object]:
    """Run one record of a batch in its own unit of work.

    A failing record is rolled back, logged and counted; the batch goes on.
    Connectivity errors are not record errors and abort the batch.
    Returns ``(ok, result)``.
    """
    try:
        return True, unit_of_work(session, operation)
    except OperationalError:
        raise
    except Exception as e:
        logger.error(f"Error processing {record}: {e}")
        report.add_error(record, e)
        return False, None
