"""
Celery worker for outbound Monday.com sync.

Lifecycle use-cases enqueue these tasks fire-and-forget; a task never raises
for tracker failures, it logs and returns the sync outcome.
"""
from celery import Celery
import logging
from .config import settings
from .document_store import get_document_store
from .use_cases import monday_sync

logger = logging.getLogger(__name__)

celery_app = Celery(
    "printflow",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
    # No automatic retries: a later status change pushes fresh state.
    task_acks_late=False,
)


@celery_app.task(name="printflow.sync_order_to_monday")
def sync_order_to_monday(order_id: str, target_board_id: str | None = None, automatic: bool = True):
    """Create or refresh the board item for the order's current status."""
    try:
        outcome = monday_sync.sync_order_to_monday(
            store=get_document_store(),
            order_id=order_id,
            target_board_id=target_board_id,
            automatic=automatic,
        )
    except Exception as e:
        logger.error(f"❌ Monday sync crashed for order {order_id}: {e}", exc_info=True)
        return {"status": "failed", "reason": str(e)}
    return outcome.as_dict()


@celery_app.task(name="printflow.push_order_status_to_monday")
def push_order_status_to_monday(order_id: str, automatic: bool = True):
    """Push the current status label to every linked board item."""
    try:
        outcome = monday_sync.push_order_status(
            store=get_document_store(),
            order_id=order_id,
            automatic=automatic,
        )
    except Exception as e:
        logger.error(f"❌ Monday status push crashed for order {order_id}: {e}", exc_info=True)
        return {"status": "failed", "reason": str(e)}
    return outcome.as_dict()


@celery_app.task(name="printflow.add_monday_note")
def add_monday_note(order_id: str, body: str):
    """Post a note on every linked board item."""
    try:
        outcome = monday_sync.add_monday_note(
            store=get_document_store(),
            order_id=order_id,
            body=body,
        )
    except Exception as e:
        logger.error(f"❌ Monday note crashed for order {order_id}: {e}", exc_info=True)
        return {"status": "failed", "reason": str(e)}
    return outcome.as_dict()


def enqueue(task, *args, **kwargs) -> bool:
    """Send a task without waiting for it; broker failures are logged, never raised."""
    try:
        task.apply_async(args=args, kwargs=kwargs)
    except Exception as e:
        logger.warning(f"⚠️ Could not enqueue {task.name}: {e}")
        return False
    return True
